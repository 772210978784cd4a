"""
Pricing Schemas

Pydantic models for price and availability responses.
"""

from datetime import date
from decimal import Decimal
from typing import Dict, List
from pydantic import BaseModel, Field


class NightPriceResponse(BaseModel):
    """Price for a single night"""
    date: date
    is_surcharge: bool
    price: Decimal


class PriceCalculationResponse(BaseModel):
    """Nightly breakdown and total for one stay"""
    room_type: str
    check_in_date: date
    check_out_date: date
    base_price: Decimal
    holiday_surcharge: Decimal
    nights: int
    total: Decimal
    average_price_per_night: Decimal = Field(..., description="Display only; billing uses total")
    daily_prices: List[NightPriceResponse]

    @classmethod
    def from_quote(cls, quote) -> "PriceCalculationResponse":
        return cls(
            room_type=quote.room_type,
            check_in_date=quote.check_in,
            check_out_date=quote.check_out,
            base_price=quote.base_price,
            holiday_surcharge=quote.holiday_surcharge,
            nights=quote.night_count,
            total=quote.total,
            average_price_per_night=quote.average_nightly_price,
            daily_prices=[
                NightPriceResponse(date=n.date, is_surcharge=n.is_surcharge, price=n.price)
                for n in quote.nights
            ],
        )


class AvailabilityResponse(BaseModel):
    check_in_date: date
    check_out_date: date
    availability: Dict[str, bool] = Field(..., description="Room type name -> bookable")
    unavailable_room_types: List[str]
