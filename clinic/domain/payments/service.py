"""Payment service - records payments and reacts to settlement.

Gateway protocols (Midtrans, Doku) live outside this service; whatever talks
to them reports the outcome through :meth:`PaymentService.update_status`.
A transition to ``paid`` confirms the booking and locks its ledger.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ...models import Payment
from ...utils.clock import utcnow
from ..bookings.ledger import BookingLedger
from ..exceptions import BookingAlreadyPaid, ConcurrentBookingEdit, PaymentNotFound
from .repository import PaymentRepository
from .schemas import PaymentCreate, PaymentStatusUpdate

logger = logging.getLogger(__name__)


class PaymentService:
    """Service layer for booking payments"""

    def __init__(self, db: Session, ledger: Optional[BookingLedger] = None):
        self.db = db
        self.repo = PaymentRepository()
        self.ledger = ledger or BookingLedger(db)

    def get_payment(self, payment_id: int) -> Payment:
        payment = self.repo.get_payment_by_id(self.db, payment_id)
        if not payment:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        return payment

    def list_payments(self, booking_id: int) -> list[Payment]:
        self.ledger.get_booking(booking_id)
        return self.repo.get_payments_for_booking(self.db, booking_id)

    def create_payment(self, data: PaymentCreate) -> Payment:
        """Record a payment for the booking's current total"""
        booking = self.ledger.get_booking(data.booking_id)
        if booking.payment_status == "paid" or self.ledger.is_locked(booking):
            raise BookingAlreadyPaid(f"Booking {booking.id} is already paid")

        payment = self.repo.create_payment(
            self.db,
            booking_id=booking.id,
            amount=booking.total_amount,
            payment_method=data.payment_method,
            payment_gateway=data.payment_gateway,
            status="pending",
        )
        logger.info(
            f"💳 Payment {payment.id} created for booking {booking.id}: "
            f"{payment.amount} via {payment.payment_gateway}/{payment.payment_method}"
        )
        return payment

    def update_status(
        self, payment_id: int, data: PaymentStatusUpdate, actor_id: Optional[str] = None
    ) -> Payment:
        """Apply a status reported for a payment; settling it locks the booking"""
        payment = self.get_payment(payment_id)
        previous_status = payment.status

        if previous_status == data.status:
            logger.info(f"Payment {payment.id} already {data.status}, nothing to do")
            return payment

        payment.status = data.status
        if data.error_message:
            payment.error_message = data.error_message

        settled = data.status == "paid"
        if settled:
            now = utcnow()
            payment.paid_at = now
            booking = payment.booking
            booking.payment_status = "paid"
            if booking.status == "pending":
                booking.status = "confirmed"
            booking.updated_at = now

        try:
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"🔁 Booking of payment {payment_id} changed while settling payment")
            raise ConcurrentBookingEdit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Failed to update payment {payment_id} to {data.status}: {e}")
            raise

        logger.info(f"💳 Payment {payment_id}: {previous_status} -> {data.status}")

        if settled:
            self.ledger.lock_on_payment(payment.booking_id, actor_id=actor_id)

        self.db.refresh(payment)
        return payment
