"""Domain errors shared by the pricing, booking and payment services.

Each error carries the HTTP status the API answers with; ``main.py`` registers
a single handler for :class:`LedgerError`. None of these are transient, so
nothing in the domain layer retries them.
"""

from typing import Optional


class LedgerError(Exception):
    status_code = 400
    default_detail = "Request could not be processed"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class TreatmentNotFound(LedgerError):
    status_code = 404
    default_detail = "Treatment not found"


class PromoNotFound(LedgerError):
    status_code = 404
    default_detail = "Promo not found"


class CategoryNotFound(LedgerError):
    status_code = 404
    default_detail = "Treatment category not found"


class BookingNotFound(LedgerError):
    status_code = 404
    default_detail = "Booking not found"


class LineItemNotFound(LedgerError):
    status_code = 404
    default_detail = "Treatment not found in booking"


class PaymentNotFound(LedgerError):
    status_code = 404
    default_detail = "Payment not found"


class BookingLocked(LedgerError):
    status_code = 409
    default_detail = "Booking has a settled payment and can no longer be edited"


class BookingAlreadyPaid(LedgerError):
    status_code = 409
    default_detail = "Booking is already paid"


class CategoryExists(LedgerError):
    status_code = 409
    default_detail = "A treatment category with this name already exists"


class LineItemExists(LedgerError):
    status_code = 409
    default_detail = "Treatment is already on this booking, update its quantity instead"


class ConsultationNotEditable(LedgerError):
    status_code = 409
    default_detail = "Consultation bookings carry a flat fee and have no treatment lines"


class InvalidQuantity(LedgerError):
    status_code = 400
    default_detail = "Quantity must be a positive integer"


class InvalidPrice(LedgerError):
    status_code = 400
    default_detail = "Unit price must be a non-negative integer"


class InvalidDiscount(LedgerError):
    status_code = 400
    default_detail = "Promo discount configuration is invalid"


class InvalidPromoWindow(LedgerError):
    status_code = 400
    default_detail = "Promo start_date must not be after end_date"


class InvalidBooking(LedgerError):
    status_code = 400
    default_detail = "Booking request is invalid"


class ConcurrentBookingEdit(LedgerError):
    status_code = 409
    default_detail = "Booking was changed by another request, please retry"
