"""Booking service - Business logic for booking creation and edits"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Booking
from .ledger import BookingLedger
from .repository import BookingRepository
from .schemas import (
    BookingCreate,
    BookingResponse,
    BookingStatusUpdate,
    EditLogResponse,
    EditTreatmentsRequest,
    EditTreatmentsResponse,
    LineItemResponse,
    WalkInCreate,
)

logger = logging.getLogger(__name__)


class BookingService:
    """Service layer for bookings; totals are always changed through the ledger"""

    def __init__(self, db: Session, ledger: Optional[BookingLedger] = None):
        self.db = db
        self.repo = BookingRepository()
        self.ledger = ledger or BookingLedger(db)

    def create_booking(self, data: BookingCreate, actor_id: Optional[str] = None) -> Booking:
        """Customer booking, starts as pending"""
        logger.info(f"📥 Creating {data.type} booking with {len(data.treatments)} treatment line(s)")
        return self.ledger.open_booking(
            booking_type=data.type,
            lines=[(t.treatment_id, t.quantity) for t in data.treatments],
            actor_id=actor_id,
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            scheduled_at=data.scheduled_at,
            notes=data.notes,
        )

    def create_walk_in(self, data: WalkInCreate, actor_id: Optional[str] = None) -> Booking:
        """Front-desk booking for a customer in the clinic, confirmed straight away"""
        logger.info(f"🚶 Creating walk-in booking for {data.customer_name} by {actor_id}")
        return self.ledger.open_booking(
            booking_type=data.type,
            lines=[(t.treatment_id, t.quantity) for t in data.treatments],
            status="confirmed",
            is_walk_in=True,
            actor_id=actor_id,
            customer_name=data.customer_name,
            customer_phone=data.customer_phone,
            scheduled_at=data.scheduled_at,
            notes=data.notes,
        )

    def get_booking(self, booking_id: int) -> Booking:
        return self.ledger.get_booking(booking_id)

    def list_bookings(
        self,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        booking_type: Optional[str] = None,
        is_walk_in: Optional[bool] = None,
        scheduled_on: Optional[date] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Booking]:
        """Admin listing, newest first"""
        return self.repo.list_bookings(
            self.db,
            status=status,
            payment_status=payment_status,
            booking_type=booking_type,
            is_walk_in=is_walk_in,
            scheduled_on=scheduled_on,
            search=search,
            limit=limit,
            offset=offset,
        )

    def update_status(
        self, booking_id: int, data: BookingStatusUpdate, actor_id: Optional[str] = None
    ) -> Booking:
        self.ledger.set_status(booking_id, data.status, actor_id=actor_id)
        return self.ledger.get_booking(booking_id)

    def edit_treatments(
        self, booking_id: int, data: EditTreatmentsRequest, actor_id: Optional[str] = None
    ) -> EditTreatmentsResponse:
        """Apply one admin edit to a booking's treatment lines"""
        logger.info(f"✏️ {data.action} on booking {booking_id}: treatment {data.treatment_id}")

        if data.action == "add_treatment":
            result = self.ledger.add_treatment(
                booking_id,
                data.treatment_id,
                quantity=data.quantity,
                unit_price_override=data.unit_price,
                actor_id=actor_id,
            )
            message = "Treatment added"
        elif data.action == "remove_treatment":
            result = self.ledger.remove_treatment(booking_id, data.treatment_id, actor_id=actor_id)
            message = "Treatment removed"
        else:
            result = self.ledger.update_quantity(
                booking_id, data.treatment_id, data.quantity, actor_id=actor_id
            )
            message = "Treatment quantity updated"

        booking = self.ledger.get_booking(booking_id)
        return EditTreatmentsResponse(
            message=message, booking=self.to_response(booking), audit=result.audit
        )

    def get_edit_logs(self, booking_id: int) -> list[EditLogResponse]:
        return [
            EditLogResponse.model_validate(log) for log in self.ledger.list_audit_records(booking_id)
        ]

    @staticmethod
    def to_response(booking: Booking) -> BookingResponse:
        return BookingResponse(
            id=booking.id,
            public_id=booking.public_id,
            type=booking.type,
            status=booking.status,
            payment_status=booking.payment_status,
            is_editable=booking.is_editable,
            is_walk_in=booking.is_walk_in,
            customer_name=booking.customer_name,
            customer_phone=booking.customer_phone,
            scheduled_at=booking.scheduled_at,
            notes=booking.notes,
            consultation_fee=booking.consultation_fee,
            total_amount=booking.total_amount,
            treatments=[
                LineItemResponse(
                    id=item.id,
                    treatment_id=item.treatment_id,
                    treatment_name=item.treatment.name if item.treatment else None,
                    quantity=item.quantity,
                    price=item.price,
                    original_price=item.original_price,
                    promo_applied=item.promo_applied,
                    subtotal=item.subtotal,
                )
                for item in booking.treatments
            ],
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )
