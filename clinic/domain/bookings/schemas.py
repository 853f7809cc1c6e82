"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, field_validator, model_validator

BookingType = Literal["treatment", "consultation"]
EditAction = Literal["add_treatment", "remove_treatment", "update_quantity"]
BookingStatus = Literal["pending", "confirmed", "completed", "canceled"]
AuditAction = Literal[
    "added_treatment", "removed_treatment", "updated_treatment", "locked_booking", "updated_status"
]


class AuditRecord(BaseModel):
    """One ledger mutation, as handed to the audit sink"""

    booking_id: int
    actor_id: Optional[str] = None
    action: AuditAction
    treatment_id: Optional[int] = None
    treatment_name: Optional[str] = None
    quantity: Optional[int] = None
    previous_quantity: Optional[int] = None
    price: Optional[int] = None
    status: Optional[str] = None
    previous_status: Optional[str] = None
    previous_total: int
    new_total: int
    timestamp: datetime

    def details(self) -> dict:
        """Payload stored in ``BookingEditLog.details``"""
        return self.model_dump(
            mode="json", exclude={"booking_id", "actor_id", "action", "timestamp"}, exclude_none=True
        )


class LineItemRequest(BaseModel):
    """A treatment and how many units of it to book"""

    treatment_id: int
    quantity: Optional[int] = None


class BookingCreate(BaseModel):
    """Schema for creating a booking"""

    type: BookingType = "treatment"
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    notes: Optional[str] = None
    treatments: list[LineItemRequest] = []

    @model_validator(mode="after")
    def validate_treatments(self):
        if self.type == "treatment" and not self.treatments:
            raise ValueError("treatments are required for a treatment booking")
        return self


class WalkInCreate(BookingCreate):
    """Schema for a walk-in booking created by staff at the front desk"""

    customer_name: str

    @field_validator("customer_name")
    @classmethod
    def validate_customer_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("customer_name is required for walk-in bookings")
        return v.strip()


class EditTreatmentsRequest(BaseModel):
    """Schema for the admin edit-treatments action"""

    action: EditAction
    treatment_id: int
    quantity: Optional[int] = None
    unit_price: Optional[int] = None

    @model_validator(mode="after")
    def validate_action(self):
        if self.action == "update_quantity" and self.quantity is None:
            raise ValueError("quantity is required for update_quantity")
        return self


class BookingStatusUpdate(BaseModel):
    """Schema for an admin status change"""

    status: BookingStatus


class LineItemResponse(BaseModel):
    """Schema for a booking line"""

    id: int
    treatment_id: int
    treatment_name: Optional[str] = None
    quantity: int
    price: int
    original_price: Optional[int] = None
    promo_applied: Optional[dict] = None
    subtotal: int


class BookingResponse(BaseModel):
    """Schema for booking response"""

    id: int
    public_id: Optional[str] = None
    type: str
    status: str
    payment_status: str
    is_editable: bool
    is_walk_in: bool
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    notes: Optional[str] = None
    consultation_fee: int
    total_amount: int
    treatments: list[LineItemResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EditTreatmentsResponse(BaseModel):
    success: bool = True
    message: str
    booking: BookingResponse
    audit: Optional[AuditRecord] = None


class EditLogResponse(BaseModel):
    """Schema for an audit trail entry"""

    id: int
    booking_id: int
    edited_by: Optional[str] = None
    action: str
    details: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
