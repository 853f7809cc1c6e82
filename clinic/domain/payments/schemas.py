"""Payment domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

PaymentGateway = Literal["manual", "midtrans", "doku"]
PaymentStatus = Literal["pending", "paid", "failed", "expired", "refunded"]


class PaymentCreate(BaseModel):
    """Schema for recording a payment attempt against a booking"""

    booking_id: int
    payment_method: str
    payment_gateway: PaymentGateway = "manual"

    @field_validator("payment_method")
    @classmethod
    def validate_payment_method(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("payment_method is required")
        return v.strip()


class PaymentStatusUpdate(BaseModel):
    """Status reported by the cashier or the gateway integration"""

    status: PaymentStatus
    error_message: Optional[str] = None


class PaymentResponse(BaseModel):
    """Schema for payment response"""

    id: int
    booking_id: int
    amount: int
    payment_method: str
    payment_gateway: str
    status: str
    paid_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
