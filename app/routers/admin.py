"""
Operator maintenance of room types, holidays and notification timing.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.catalog import (
    RoomTypeCreate, RoomTypeUpdate, RoomTypeResponse,
    HolidayCreate, HolidayResponse, HolidayCreateResponse,
    NotificationPolicyUpdate, NotificationPolicyResponse,
)
from ..services.catalog_service import CatalogService
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api/admin", tags=["Admin"])


def get_catalog_service(db: Session = Depends(get_db)) -> CatalogService:
    return CatalogService(db)


# ---------- Room types ----------

@router.get("/room-types", response_model=List[RoomTypeResponse])
@limiter.limit(get_rate_limit("admin"))
async def list_room_types(
    request: Request,
    include_inactive: bool = Query(True),
    service: CatalogService = Depends(get_catalog_service)
):
    """All room types, deactivated ones included unless include_inactive=false"""
    return service.list_room_types(include_inactive=include_inactive)


@router.post("/room-types", response_model=RoomTypeResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("admin"))
async def create_room_type(
    request: Request,
    data: RoomTypeCreate,
    service: CatalogService = Depends(get_catalog_service)
):
    return service.create_room_type(data)


@router.put("/room-types/{room_type_id}", response_model=RoomTypeResponse)
@limiter.limit(get_rate_limit("admin"))
async def update_room_type(
    request: Request,
    room_type_id: int,
    data: RoomTypeUpdate,
    service: CatalogService = Depends(get_catalog_service)
):
    """Change prices, capacity, ordering or active flag. Existing bookings keep their amounts."""
    return service.update_room_type(room_type_id, data)


@router.delete("/room-types/{room_type_id}", response_model=RoomTypeResponse)
@limiter.limit(get_rate_limit("admin"))
async def deactivate_room_type(
    request: Request,
    room_type_id: int,
    service: CatalogService = Depends(get_catalog_service)
):
    """Soft delete: the row stays for existing bookings but is no longer bookable"""
    return service.deactivate_room_type(room_type_id)


# ---------- Holidays ----------

@router.get("/holidays", response_model=List[HolidayResponse])
@limiter.limit(get_rate_limit("admin"))
async def list_holidays(
    request: Request,
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    service: CatalogService = Depends(get_catalog_service)
):
    return service.list_holidays(date_from, date_to)


@router.post("/holidays", response_model=HolidayCreateResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("admin"))
async def add_holidays(
    request: Request,
    data: HolidayCreate,
    service: CatalogService = Depends(get_catalog_service)
):
    """
    Add a single date (409 if present) or a range (present dates skipped).
    """
    added, skipped = service.add_holidays(data)
    return HolidayCreateResponse(
        added=[HolidayResponse.model_validate(h) for h in added],
        skipped=skipped,
    )


@router.delete("/holidays/{holiday_date}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit(get_rate_limit("admin"))
async def delete_holiday(
    request: Request,
    holiday_date: date,
    service: CatalogService = Depends(get_catalog_service)
):
    service.delete_holiday(holiday_date)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Notification timing ----------

@router.get("/notification-policies", response_model=List[NotificationPolicyResponse])
@limiter.limit(get_rate_limit("admin"))
async def list_notification_policies(
    request: Request,
    service: CatalogService = Depends(get_catalog_service)
):
    return service.list_policies()


@router.put("/notification-policies/{kind}", response_model=NotificationPolicyResponse)
@limiter.limit(get_rate_limit("admin"))
async def update_notification_policy(
    request: Request,
    kind: str,
    data: NotificationPolicyUpdate,
    service: CatalogService = Depends(get_catalog_service)
):
    """
    Timing for one scheduled kind.

    payment_reminder's offset_days is the bank-transfer hold period and
    applies to the next expiry sweep.
    """
    return service.update_policy(kind, data)
