"""Booking ledger - owns booking lines and keeps ``total_amount`` in step with them.

Every mutating entry point runs through :meth:`BookingLedger._run`, which
loads the booking row for update, applies the change, writes the audit record
and commits as one unit. ``Booking.version`` is SQLAlchemy's version counter,
so if another request committed an edit to the same booking in between, the
UPDATE matches no row, ``StaleDataError`` is raised and the whole operation is
replayed against the fresh row.

A booking is editable until a payment for it settles; after
:meth:`BookingLedger.lock_on_payment` every line edit raises ``BookingLocked``.
Status changes go through the same retry loop but are allowed on locked bookings.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from ...config import CONSULTATION_FEE, LEDGER_MAX_RETRIES
from ...models import Booking, BookingEditLog, BookingTreatment, Treatment
from ...utils.clock import utcnow
from ..exceptions import (
    BookingLocked,
    BookingNotFound,
    ConcurrentBookingEdit,
    ConsultationNotEditable,
    InvalidBooking,
    InvalidDiscount,
    InvalidPrice,
    InvalidQuantity,
    LineItemExists,
    LineItemNotFound,
    TreatmentNotFound,
)
from ..pricing.repository import PromoRepository, TreatmentRepository
from ..pricing.resolver import PromoResolver
from .audit import SqlAuditSink
from .repository import BookingRepository
from .schemas import AuditRecord

logger = logging.getLogger(__name__)

TREATMENT = "treatment"
CONSULTATION = "consultation"
BOOKING_STATUSES = ("pending", "confirmed", "completed", "canceled")


class LedgerResult:
    """What a ledger mutation left behind: the new total, the touched line and its audit record"""

    def __init__(
        self,
        total_amount: int,
        line_item: Optional[BookingTreatment] = None,
        audit: Optional[AuditRecord] = None,
    ):
        self.total_amount = total_amount
        self.line_item = line_item
        self.audit = audit


def validate_quantity(quantity, allow_default: bool = False) -> int:
    """Positive integer check; ``None`` becomes 1 only where a default is allowed"""
    if quantity is None and allow_default:
        return 1
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantity(f"Quantity must be a positive integer, got {quantity!r}")
    return quantity


def validate_unit_price(price) -> int:
    if isinstance(price, bool) or not isinstance(price, int) or price < 0:
        raise InvalidPrice(f"Unit price must be a non-negative integer, got {price!r}")
    return price


class BookingLedger:
    """Line-item and total bookkeeping for bookings"""

    def __init__(
        self,
        db: Session,
        resolver: Optional[PromoResolver] = None,
        audit_sink: Optional[SqlAuditSink] = None,
        max_retries: int = LEDGER_MAX_RETRIES,
    ):
        self.db = db
        self.repo = BookingRepository()
        self.treatments = TreatmentRepository()
        self.promos = PromoRepository()
        self.resolver = resolver or PromoResolver()
        self.audit_sink = audit_sink or SqlAuditSink()
        self.max_retries = max(1, max_retries)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: int) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking:
            raise BookingNotFound(f"Booking {booking_id} not found")
        return booking

    def list_line_items(self, booking_id: int) -> list[BookingTreatment]:
        self.get_booking(booking_id)
        return self.repo.get_line_items(self.db, booking_id)

    def list_audit_records(self, booking_id: int) -> list[BookingEditLog]:
        self.get_booking(booking_id)
        return self.repo.get_edit_logs(self.db, booking_id)

    def is_locked(self, booking: Booking) -> bool:
        if not booking.is_editable or booking.payment_status == "paid":
            return True
        return self.repo.has_settled_payment(self.db, booking.id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def open_booking(
        self,
        booking_type: str = TREATMENT,
        lines: Optional[list[tuple[int, Optional[int]]]] = None,
        consultation_fee: Optional[int] = None,
        status: str = "pending",
        is_walk_in: bool = False,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
        **booking_data,
    ) -> Booking:
        """Create a booking with its initial lines in one transaction.

        ``lines`` holds ``(treatment_id, quantity)`` pairs; repeated treatments
        are merged by adding their quantities. Consultation bookings take a
        flat fee instead of lines.
        """
        now = now or utcnow()
        lines = lines or []

        if booking_type not in (TREATMENT, CONSULTATION):
            raise InvalidBooking(f"Unknown booking type {booking_type!r}")

        merged: dict[int, int] = {}
        for treatment_id, quantity in lines:
            merged[treatment_id] = merged.get(treatment_id, 0) + validate_quantity(
                quantity, allow_default=True
            )

        if booking_type == TREATMENT and not merged:
            raise InvalidBooking("Treatment bookings need at least one treatment")

        fee = 0
        if booking_type == CONSULTATION:
            fee = CONSULTATION_FEE if consultation_fee is None else validate_unit_price(consultation_fee)
            if merged:
                logger.warning(
                    f"⚠️ Ignoring {len(merged)} treatment line(s) sent with a consultation booking"
                )
                merged = {}

        booking = Booking(
            type=booking_type,
            status=status,
            is_walk_in=is_walk_in,
            consultation_fee=fee,
            total_amount=fee,
            created_at=now,
            updated_at=now,
            **booking_data,
        )
        try:
            self.db.add(booking)
            self.db.flush()

            for treatment_id, quantity in merged.items():
                treatment = self._get_treatment(treatment_id)
                self._append_line(booking, treatment, quantity, None, actor_id, now)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(
            f"✅ Opened {booking_type} booking {booking.id} "
            f"({len(merged)} line(s), total {booking.total_amount}, walk_in={is_walk_in})"
        )
        return booking

    def add_treatment(
        self,
        booking_id: int,
        treatment_id: int,
        quantity: Optional[int] = None,
        unit_price_override: Optional[int] = None,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LedgerResult:
        """Add a treatment line, pricing it through the promo resolver unless overridden"""
        quantity = validate_quantity(quantity, allow_default=True)
        if unit_price_override is not None:
            unit_price_override = validate_unit_price(unit_price_override)
        now = now or utcnow()

        def mutate(booking: Booking) -> LedgerResult:
            self._ensure_editable(booking)
            treatment = self._get_treatment(treatment_id)
            if self.repo.get_line_item(self.db, booking.id, treatment.id):
                raise LineItemExists(
                    f"Treatment {treatment.id} is already on booking {booking.id}"
                )
            item, record = self._append_line(
                booking, treatment, quantity, unit_price_override, actor_id, now
            )
            return LedgerResult(booking.total_amount, item, record)

        return self._run(booking_id, "add_treatment", mutate)

    def remove_treatment(
        self,
        booking_id: int,
        treatment_id: int,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LedgerResult:
        """Drop a treatment line and take its subtotal off the total"""
        now = now or utcnow()

        def mutate(booking: Booking) -> LedgerResult:
            self._ensure_editable(booking)
            item = self._get_line_item(booking, treatment_id)

            previous_total = booking.total_amount
            new_total = previous_total - item.subtotal
            if new_total < 0:
                logger.error(
                    f"❌ Ledger invariant broken on booking {booking.id}: removing "
                    f"{item.subtotal} from total {previous_total} would go negative, clamping to 0"
                )
                new_total = 0

            record = self._record(
                booking,
                "removed_treatment",
                actor_id,
                now,
                previous_total,
                new_total,
                treatment_id=item.treatment_id,
                treatment_name=item.treatment.name if item.treatment else None,
                quantity=item.quantity,
                price=item.price,
            )
            booking.treatments.remove(item)
            self._set_total(booking, new_total, now)
            self.audit_sink.emit(self.db, record)
            return LedgerResult(new_total, None, record)

        return self._run(booking_id, "remove_treatment", mutate)

    def update_quantity(
        self,
        booking_id: int,
        treatment_id: int,
        new_quantity: int,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LedgerResult:
        """Change how many units a line has; the unit price stays as charged"""
        new_quantity = validate_quantity(new_quantity)
        now = now or utcnow()

        def mutate(booking: Booking) -> LedgerResult:
            self._ensure_editable(booking)
            item = self._get_line_item(booking, treatment_id)

            previous_quantity = item.quantity
            previous_total = booking.total_amount
            new_total = previous_total - item.price * previous_quantity + item.price * new_quantity
            if new_total < 0:
                logger.error(
                    f"❌ Ledger invariant broken on booking {booking.id}: quantity change "
                    f"{previous_quantity} -> {new_quantity} drives total {previous_total} negative"
                )
                new_total = 0

            item.quantity = new_quantity
            self._set_total(booking, new_total, now)
            record = self._record(
                booking,
                "updated_treatment",
                actor_id,
                now,
                previous_total,
                new_total,
                treatment_id=item.treatment_id,
                treatment_name=item.treatment.name if item.treatment else None,
                quantity=new_quantity,
                previous_quantity=previous_quantity,
                price=item.price,
            )
            self.audit_sink.emit(self.db, record)
            return LedgerResult(new_total, item, record)

        return self._run(booking_id, "update_quantity", mutate)

    def lock_on_payment(
        self, booking_id: int, actor_id: Optional[str] = None, now: Optional[datetime] = None
    ) -> LedgerResult:
        """Freeze the booking once its payment settled; calling it again is a no-op"""
        now = now or utcnow()

        def mutate(booking: Booking) -> LedgerResult:
            if not booking.is_editable:
                return LedgerResult(booking.total_amount)

            booking.is_editable = False
            booking.updated_at = now
            record = self._record(
                booking, "locked_booking", actor_id, now, booking.total_amount, booking.total_amount
            )
            self.audit_sink.emit(self.db, record)
            return LedgerResult(booking.total_amount, None, record)

        result = self._run(booking_id, "lock_on_payment", mutate)
        if result.audit:
            logger.info(f"🔒 Booking {booking_id} locked after payment settled")
        return result

    def set_status(
        self,
        booking_id: int,
        status: str,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LedgerResult:
        """Move a booking through its lifecycle.

        Status is not part of the editable line state, so a locked (paid)
        booking can still be completed or canceled. Setting the current status
        again is a no-op and leaves no audit record.
        """
        if status not in BOOKING_STATUSES:
            raise InvalidBooking(f"Unknown booking status {status!r}")
        now = now or utcnow()

        def mutate(booking: Booking) -> LedgerResult:
            if booking.status == status:
                return LedgerResult(booking.total_amount)

            record = self._record(
                booking,
                "updated_status",
                actor_id,
                now,
                booking.total_amount,
                booking.total_amount,
                status=status,
                previous_status=booking.status,
            )
            booking.status = status
            booking.updated_at = now
            self.audit_sink.emit(self.db, record)
            return LedgerResult(booking.total_amount, None, record)

        result = self._run(booking_id, "set_status", mutate)
        if result.audit:
            logger.info(
                f"📋 Booking {booking_id}: {result.audit.previous_status} -> {status} by {actor_id}"
            )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(self, booking_id: int, operation: str, mutate: Callable[[Booking], LedgerResult]):
        for attempt in range(1, self.max_retries + 1):
            try:
                booking = self.repo.get_booking(self.db, booking_id, for_update=True)
                if not booking:
                    raise BookingNotFound(f"Booking {booking_id} not found")
                result = mutate(booking)
                self.db.commit()
                return result
            except (StaleDataError, IntegrityError) as e:
                self.db.rollback()
                logger.warning(
                    f"🔁 {operation} on booking {booking_id} lost a concurrent update "
                    f"(attempt {attempt}/{self.max_retries}): {e.__class__.__name__}"
                )
            except Exception:
                self.db.rollback()
                raise

        logger.error(f"❌ {operation} on booking {booking_id} gave up after {self.max_retries} attempts")
        raise ConcurrentBookingEdit()

    def _ensure_editable(self, booking: Booking) -> None:
        if self.is_locked(booking):
            raise BookingLocked(f"Booking {booking.id} has a settled payment and is locked")
        if booking.type == CONSULTATION:
            raise ConsultationNotEditable()

    def _get_treatment(self, treatment_id: int) -> Treatment:
        treatment = self.treatments.get_treatment_by_id(self.db, treatment_id)
        if not treatment:
            raise TreatmentNotFound(f"Treatment {treatment_id} not found")
        return treatment

    def _get_line_item(self, booking: Booking, treatment_id: int) -> BookingTreatment:
        item = self.repo.get_line_item(self.db, booking.id, treatment_id)
        if not item:
            raise LineItemNotFound(f"Treatment {treatment_id} is not on booking {booking.id}")
        return item

    def _append_line(
        self,
        booking: Booking,
        treatment: Treatment,
        quantity: int,
        unit_price_override: Optional[int],
        actor_id: Optional[str],
        now: datetime,
    ) -> tuple[BookingTreatment, AuditRecord]:
        candidates = self.promos.list_promos(
            self.db, active_only=True, for_treatment=treatment.id, now=now
        )
        if unit_price_override is None:
            effective = self.resolver.resolve_best_price(treatment, candidates, now)
            price, promo = effective.final_price, effective.applied_promo
        else:
            price, promo = unit_price_override, None
            try:
                effective = self.resolver.resolve_best_price(treatment, candidates, now)
            except InvalidDiscount as e:
                # The override stands on its own; a broken promo only loses attribution
                logger.warning(
                    f"⚠️ Promo resolution failed for treatment {treatment.id} on booking "
                    f"{booking.id}, charging override {price} unattributed: {e.detail}"
                )
            else:
                # Attribution only when the override matches the resolved promo price
                if price == effective.final_price:
                    promo = effective.applied_promo

        item = BookingTreatment(
            treatment_id=treatment.id,
            quantity=quantity,
            price=price,
            original_price=treatment.base_price,
            promo_applied=promo.model_dump(mode="json") if promo else None,
            created_at=now,
        )
        booking.treatments.append(item)

        previous_total = booking.total_amount or 0
        new_total = previous_total + price * quantity
        self._set_total(booking, new_total, now)

        record = self._record(
            booking,
            "added_treatment",
            actor_id,
            now,
            previous_total,
            new_total,
            treatment_id=treatment.id,
            treatment_name=treatment.name,
            quantity=quantity,
            price=price,
        )
        self.audit_sink.emit(self.db, record)
        return item, record

    @staticmethod
    def _set_total(booking: Booking, total: int, now: datetime) -> None:
        booking.total_amount = total
        booking.updated_at = now
        # Force the UPDATE (and its version check) even when neither value changed
        flag_modified(booking, "updated_at")

    @staticmethod
    def _record(
        booking: Booking,
        action: str,
        actor_id: Optional[str],
        now: datetime,
        previous_total: int,
        new_total: int,
        **details,
    ) -> AuditRecord:
        return AuditRecord(
            booking_id=booking.id,
            actor_id=actor_id,
            action=action,
            previous_total=previous_total,
            new_total=new_total,
            timestamp=now,
            **details,
        )
