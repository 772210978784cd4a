"""
Price and availability lookups for the public booking form.
"""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session
from datetime import date

from ..database import get_db
from ..schemas.pricing import PriceCalculationResponse, AvailabilityResponse
from ..services.availability_service import AvailabilityChecker
from ..services.pricing_engine import get_pricing_engine
from ..utils.exceptions import ValidationError
from ..utils.rate_limiter import limiter, get_rate_limit

router = APIRouter(prefix="/api", tags=["Pricing"])


def _require_window(check_in: date, check_out: date) -> None:
    if check_out <= check_in:
        raise ValidationError(
            "Check-out date must be after check-in date",
            details={"check_in": check_in.isoformat(), "check_out": check_out.isoformat()}
        )


@router.get("/room-availability", response_model=AvailabilityResponse)
@limiter.limit(get_rate_limit("availability"))
async def room_availability(
    request: Request,
    check_in_date: date = Query(...),
    check_out_date: date = Query(...),
    db: Session = Depends(get_db)
):
    """Per active room type: can it still be booked for the window?"""
    _require_window(check_in_date, check_out_date)
    availability = AvailabilityChecker(db).availability_map(check_in_date, check_out_date)
    return AvailabilityResponse(
        check_in_date=check_in_date,
        check_out_date=check_out_date,
        availability=availability,
        unavailable_room_types=[name for name, free in availability.items() if not free],
    )


@router.get("/calculate-price", response_model=PriceCalculationResponse)
@limiter.limit(get_rate_limit("price"))
async def calculate_price(
    request: Request,
    check_in_date: date = Query(...),
    check_out_date: date = Query(...),
    room_type: str = Query(..., min_length=1),
    db: Session = Depends(get_db)
):
    """Nightly breakdown with holiday/weekend surcharges"""
    _require_window(check_in_date, check_out_date)
    quote = get_pricing_engine(db).quote(check_in_date, check_out_date, room_type)
    return PriceCalculationResponse.from_quote(quote)
