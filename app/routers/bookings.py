from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session
import logging

from ..database import get_db
from ..schemas.booking import (
    BookingCreate, ManualBookingCreate, BookingUpdate,
    BookingResponse, BookingCreateResult
)
from ..services.booking_lifecycle import BookingLifecycleManager
from ..services.notification_policies import get_hold_days, hold_deadline
from ..models.booking import PaymentMethod
from ..utils.rate_limiter import limiter, get_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Bookings"])


def get_lifecycle_manager(db: Session = Depends(get_db)) -> BookingLifecycleManager:
    return BookingLifecycleManager(db)


@router.post("/bookings", response_model=BookingCreateResult, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("booking_create"))
async def create_booking(
    request: Request,
    booking_data: BookingCreate,
    manager: BookingLifecycleManager = Depends(get_lifecycle_manager)
):
    """
    Public booking request.

    - 201: booking held as reserved/pending
    - 409 ROOM_UNAVAILABLE: dates taken, pick other dates
    - 503: system error, safe to retry
    """
    booking = manager.create_booking(booking_data)

    deadline = None
    if booking.payment_method == PaymentMethod.BANK_TRANSFER.value:
        deadline = hold_deadline(booking, get_hold_days(manager.db))

    return BookingCreateResult(
        booking_id=booking.booking_id,
        status=booking.status,
        payment_status=booking.payment_status,
        payment_method=booking.payment_method,
        nights=booking.nights,
        total_amount=booking.total_amount,
        final_amount=booking.final_amount,
        payment_deadline=deadline,
    )


@router.post("/admin/bookings/manual", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("admin"))
async def create_manual_booking(
    request: Request,
    booking_data: ManualBookingCreate,
    manager: BookingLifecycleManager = Depends(get_lifecycle_manager)
):
    """Operator entry; no guest notifications are sent"""
    booking = manager.create_manual_booking(booking_data)
    return BookingResponse.from_booking(booking)


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str,
    manager: BookingLifecycleManager = Depends(get_lifecycle_manager)
):
    return BookingResponse.from_booking(manager.get_booking(booking_id))


@router.put("/bookings/{booking_id}", response_model=BookingResponse)
@limiter.limit(get_rate_limit("admin"))
async def edit_booking(
    request: Request,
    booking_id: str,
    booking_data: BookingUpdate,
    manager: BookingLifecycleManager = Depends(get_lifecycle_manager)
):
    """Operator edit; paid reservations are promoted to active"""
    booking = manager.edit_booking(booking_id, booking_data)
    return BookingResponse.from_booking(booking)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingResponse)
@limiter.limit(get_rate_limit("admin"))
async def cancel_booking(
    request: Request,
    booking_id: str,
    manager: BookingLifecycleManager = Depends(get_lifecycle_manager)
):
    booking = manager.cancel_booking(booking_id)
    return BookingResponse.from_booking(booking)


@router.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(get_rate_limit("admin"))
async def delete_booking(
    request: Request,
    booking_id: str,
    manager: BookingLifecycleManager = Depends(get_lifecycle_manager)
):
    """Only cancelled bookings can be deleted (409 otherwise)"""
    manager.delete_booking(booking_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
