"""Booking repository - Database operations for bookings and their lines"""

from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from ...models import Booking, BookingEditLog, BookingTreatment, Payment


class BookingRepository:
    """Repository for booking database operations.

    Nothing here commits: the ledger owns the transaction so a line change,
    the new total and its audit record are written together.
    """

    @staticmethod
    def get_booking(db: Session, booking_id: int, for_update: bool = False) -> Optional[Booking]:
        """Get a booking by ID; ``for_update`` takes a row lock where the backend supports it"""
        query = db.query(Booking).filter(Booking.id == booking_id)
        if for_update:
            # Always re-read the row so a retried edit never works from a stale total
            query = query.with_for_update().populate_existing()
        else:
            query = query.options(
                selectinload(Booking.treatments).selectinload(BookingTreatment.treatment)
            )
        return query.first()

    @staticmethod
    def list_bookings(
        db: Session,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        booking_type: Optional[str] = None,
        is_walk_in: Optional[bool] = None,
        scheduled_on: Optional[date] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Booking]:
        """List bookings newest first with optional filters"""
        query = db.query(Booking).options(
            selectinload(Booking.treatments).selectinload(BookingTreatment.treatment)
        )

        if status:
            query = query.filter(Booking.status == status)
        if payment_status:
            query = query.filter(Booking.payment_status == payment_status)
        if booking_type:
            query = query.filter(Booking.type == booking_type)
        if is_walk_in is not None:
            query = query.filter(Booking.is_walk_in.is_(is_walk_in))
        if scheduled_on is not None:
            day = datetime.combine(scheduled_on, time.min)
            query = query.filter(
                Booking.scheduled_at >= day, Booking.scheduled_at < day + timedelta(days=1)
            )
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query = query.filter(
                or_(Booking.customer_name.ilike(pattern), Booking.customer_phone.ilike(pattern))
            )

        return (
            query.order_by(Booking.created_at.desc(), Booking.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_line_item(db: Session, booking_id: int, treatment_id: int) -> Optional[BookingTreatment]:
        """Get the line for a treatment on a booking"""
        return (
            db.query(BookingTreatment)
            .filter(
                BookingTreatment.booking_id == booking_id,
                BookingTreatment.treatment_id == treatment_id,
            )
            .populate_existing()
            .first()
        )

    @staticmethod
    def get_line_items(db: Session, booking_id: int) -> list[BookingTreatment]:
        """Get all lines of a booking in insertion order"""
        return (
            db.query(BookingTreatment)
            .options(selectinload(BookingTreatment.treatment))
            .filter(BookingTreatment.booking_id == booking_id)
            .order_by(BookingTreatment.id.asc())
            .all()
        )

    @staticmethod
    def has_settled_payment(db: Session, booking_id: int) -> bool:
        """True once any payment for the booking reached ``paid``"""
        return (
            db.query(Payment.id)
            .filter(Payment.booking_id == booking_id, Payment.status == "paid")
            .first()
            is not None
        )

    @staticmethod
    def add_edit_log(db: Session, **log_data) -> BookingEditLog:
        """Stage an audit entry in the current transaction"""
        log = BookingEditLog(**log_data)
        db.add(log)
        return log

    @staticmethod
    def get_edit_logs(db: Session, booking_id: int) -> list[BookingEditLog]:
        """Get the audit trail for a booking, newest first"""
        return (
            db.query(BookingEditLog)
            .filter(BookingEditLog.booking_id == booking_id)
            .order_by(BookingEditLog.created_at.desc(), BookingEditLog.id.desc())
            .all()
        )
