"""Booking router - FastAPI endpoints for bookings"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_actor_id
from ...database import get_db
from .schemas import (
    BookingCreate,
    BookingResponse,
    BookingStatus,
    BookingStatusUpdate,
    BookingType,
    EditLogResponse,
    EditTreatmentsRequest,
    EditTreatmentsResponse,
    WalkInCreate,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: BookingCreate,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    """Create a booking; treatment lines are priced with the best live promo"""
    booking = service.create_booking(data, actor_id)
    return service.to_response(booking)


@router.get("", response_model=list[BookingResponse])
async def list_bookings(
    status: Optional[BookingStatus] = Query(None),
    payment_status: Optional[str] = Query(None),
    booking_type: Optional[BookingType] = Query(None, alias="type"),
    is_walk_in: Optional[bool] = Query(None),
    scheduled_on: Optional[date] = Query(None, alias="date", description="Scheduled day, YYYY-MM-DD"),
    search: Optional[str] = Query(None, description="Customer name or phone"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: BookingService = Depends(get_booking_service),
):
    """Admin booking list, newest first"""
    bookings = service.list_bookings(
        status=status,
        payment_status=payment_status,
        booking_type=booking_type,
        is_walk_in=is_walk_in,
        scheduled_on=scheduled_on,
        search=search,
        limit=limit,
        offset=offset,
    )
    return [service.to_response(b) for b in bookings]


@router.post("/walk-in", response_model=BookingResponse, status_code=201)
async def create_walk_in_booking(
    data: WalkInCreate,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    """Create an auto-confirmed booking for a customer at the front desk"""
    booking = service.create_walk_in(data, actor_id)
    return service.to_response(booking)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
):
    return service.to_response(service.get_booking(booking_id))


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: int,
    data: BookingStatusUpdate,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    """Set pending, confirmed, completed or canceled; allowed after payment too"""
    return service.to_response(service.update_status(booking_id, data, actor_id))


@router.post("/{booking_id}/treatments", response_model=EditTreatmentsResponse)
async def edit_booking_treatments(
    booking_id: int,
    data: EditTreatmentsRequest,
    actor_id: Optional[str] = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service),
):
    """Add, remove or re-quantify a treatment line while the booking is unpaid"""
    return service.edit_treatments(booking_id, data, actor_id)


@router.get("/{booking_id}/edit-logs", response_model=list[EditLogResponse])
async def get_booking_edit_logs(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
):
    """Audit trail of treatment edits for a booking"""
    return service.get_edit_logs(booking_id)


__all__ = ["router", "get_booking_service"]
