"""Booking domain - booking lines, totals and the edit lock"""

from .ledger import BookingLedger, LedgerResult
from .router import router

__all__ = ["BookingLedger", "LedgerResult", "router"]
