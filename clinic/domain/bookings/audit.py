"""Audit sinks for booking ledger records"""

import logging

from sqlalchemy.orm import Session

from .repository import BookingRepository
from .schemas import AuditRecord

logger = logging.getLogger(__name__)


class SqlAuditSink:
    """Writes each record as a ``BookingEditLog`` row in the caller's transaction"""

    def __init__(self):
        self.repo = BookingRepository()

    def emit(self, db: Session, record: AuditRecord) -> None:
        self.repo.add_edit_log(
            db,
            booking_id=record.booking_id,
            edited_by=record.actor_id,
            action=record.action,
            details=record.details(),
            created_at=record.timestamp,
        )
        logger.info(
            f"📝 Booking {record.booking_id} {record.action} by {record.actor_id or 'customer'}: "
            f"total {record.previous_total} -> {record.new_total}"
        )
