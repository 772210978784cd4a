"""
Pricing Engine Service

Computes nightly prices for a room category over a stay:
- Base nightly price from the room type
- Holiday surcharge on surcharge days

A date is a surcharge day if it appears in the holiday calendar, or falls
on a configured weekend day (policy switch). A holiday row flagged
is_surcharge=False overrides a computed weekend.
"""

from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Dict, Optional, Set
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from ..config import settings
from ..models.holiday import Holiday
from ..models.room_type import RoomType
from ..utils.exceptions import NotFoundError, ValidationError


@dataclass
class NightPrice:
    """Price for a single night"""
    date: date
    is_surcharge: bool
    price: Decimal


@dataclass
class StayQuote:
    """Priced stay over [check_in, check_out)"""
    room_type: str
    check_in: date
    check_out: date
    base_price: Decimal
    holiday_surcharge: Decimal
    nights: List[NightPrice] = field(default_factory=list)
    total: Decimal = Decimal("0")

    @property
    def night_count(self) -> int:
        return len(self.nights)

    @property
    def average_nightly_price(self) -> Decimal:
        """Display only; billing always uses total"""
        if not self.nights:
            return self.base_price
        return (self.total / self.night_count).quantize(Decimal("1"), rounding=ROUND_HALF_UP)

    def to_dict(self) -> Dict:
        return {
            "room_type": self.room_type,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "base_price": str(self.base_price),
            "holiday_surcharge": str(self.holiday_surcharge),
            "nights": self.night_count,
            "total": str(self.total),
            "average_price_per_night": str(self.average_nightly_price),
            "daily_prices": [
                {
                    "date": night.date.isoformat(),
                    "is_surcharge": night.is_surcharge,
                    "price": str(night.price),
                }
                for night in self.nights
            ],
        }


def iterate_nights(check_in: date, check_out: date):
    """Yield every date in [check_in, check_out)"""
    current = check_in
    while current < check_out:
        yield current
        current += timedelta(days=1)


class PricingEngine:
    """
    Calendar/pricing resolver for stays.

    Pricing Formula:
    1. nightly = price + (holiday_surcharge if surcharge day else 0)
    2. total = sum(nightly) over [check_in, check_out)
    """

    def __init__(
        self,
        db: Session,
        weekend_days: Optional[Set[int]] = None,
        weekend_surcharge: Optional[bool] = None
    ):
        self.db = db
        self.weekend_days = weekend_days if weekend_days is not None else settings.weekend_day_numbers
        self.weekend_surcharge = (
            weekend_surcharge if weekend_surcharge is not None else settings.weekend_surcharge_enabled
        )

    def get_room_type(self, name: str, include_inactive: bool = False) -> RoomType:
        """Look up a category by name (or display name)"""
        query = self.db.query(RoomType).filter(
            (RoomType.name == name) | (RoomType.display_name == name)
        )
        if not include_inactive:
            query = query.filter(RoomType.is_active == True)
        room_type = query.first()
        if room_type is None:
            raise NotFoundError(f"Room type not found: {name}", details={"room_type": name})
        return room_type

    def _calendar_overrides(self, check_in: date, check_out: date) -> Dict[date, bool]:
        """Holiday rows inside the window, keyed by date"""
        rows = self.db.query(Holiday).filter(
            Holiday.holiday_date >= check_in,
            Holiday.holiday_date < check_out
        ).all()
        return {row.holiday_date: bool(row.is_surcharge) for row in rows}

    def _is_surcharge(self, day: date, overrides: Dict[date, bool]) -> bool:
        if day in overrides:
            return overrides[day]
        return self.weekend_surcharge and day.weekday() in self.weekend_days

    def is_surcharge_day(self, day: date) -> bool:
        """Check a single date against the holiday calendar and weekend policy"""
        overrides = self._calendar_overrides(day, day + timedelta(days=1))
        return self._is_surcharge(day, overrides)

    def price_stay(self, check_in: date, check_out: date, room_type: RoomType) -> StayQuote:
        """
        Price every night of the stay.

        Raises:
            ValidationError: If check_out is not after check_in
        """
        if check_out <= check_in:
            raise ValidationError(
                "Check-out date must be after check-in date",
                details={"check_in": check_in.isoformat(), "check_out": check_out.isoformat()}
            )

        base_price = Decimal(str(room_type.price or 0))
        surcharge = Decimal(str(room_type.holiday_surcharge or 0))
        overrides = self._calendar_overrides(check_in, check_out)

        quote = StayQuote(
            room_type=room_type.name,
            check_in=check_in,
            check_out=check_out,
            base_price=base_price,
            holiday_surcharge=surcharge,
        )

        for night in iterate_nights(check_in, check_out):
            is_surcharge = self._is_surcharge(night, overrides)
            price = base_price + surcharge if is_surcharge else base_price
            quote.nights.append(NightPrice(date=night, is_surcharge=is_surcharge, price=price))
            quote.total += price

        return quote

    def quote(self, check_in: date, check_out: date, room_type_name: str) -> StayQuote:
        """Price a stay for a category referenced by name"""
        room_type = self.get_room_type(room_type_name)
        return self.price_stay(check_in, check_out, room_type)


def get_pricing_engine(db: Session) -> PricingEngine:
    """Factory function to get a pricing engine instance"""
    return PricingEngine(db)
