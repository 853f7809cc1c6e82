"""Payment router - FastAPI endpoints for booking payments"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_actor_id
from ...database import get_db
from .schemas import PaymentCreate, PaymentResponse, PaymentStatusUpdate
from .service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db)


@router.post("", response_model=PaymentResponse, status_code=201)
async def create_payment(
    data: PaymentCreate,
    service: PaymentService = Depends(get_payment_service),
):
    """Record a payment for a booking's current total"""
    return service.create_payment(data)


@router.get("/booking/{booking_id}", response_model=list[PaymentResponse])
async def list_booking_payments(
    booking_id: int,
    service: PaymentService = Depends(get_payment_service),
):
    return service.list_payments(booking_id)


@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: int,
    service: PaymentService = Depends(get_payment_service),
):
    return service.get_payment(payment_id)


@router.post("/{payment_id}/status", response_model=PaymentResponse)
async def update_payment_status(
    payment_id: int,
    data: PaymentStatusUpdate,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: PaymentService = Depends(get_payment_service),
):
    """Report a payment outcome; ``paid`` confirms and locks the booking"""
    return service.update_status(payment_id, data, actor_id)


__all__ = ["router", "get_payment_service"]
