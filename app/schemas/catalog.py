"""
Catalog Schemas

Operator-facing models for room types, the holiday calendar and
notification timing.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


class RoomTypeBase(BaseModel):
    display_name: str = Field(..., min_length=1, max_length=100)
    price: Decimal = Field(..., ge=0)
    holiday_surcharge: Decimal = Field(default=Decimal("0"), ge=0)
    capacity: int = Field(default=1, ge=1)
    display_order: int = 0
    is_active: bool = True


class RoomTypeCreate(RoomTypeBase):
    name: str = Field(..., min_length=1, max_length=50, pattern=r"^[a-z0-9_-]+$")

    @field_validator('name', mode='before')
    @classmethod
    def normalise_name(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class RoomTypeUpdate(BaseModel):
    """Partial update; the name is the booking key and cannot change"""
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    price: Optional[Decimal] = Field(None, ge=0)
    holiday_surcharge: Optional[Decimal] = Field(None, ge=0)
    capacity: Optional[int] = Field(None, ge=1)
    display_order: Optional[int] = None
    is_active: Optional[bool] = None


class RoomTypeResponse(BaseModel):
    id: int
    name: str
    display_name: str
    price: Decimal
    holiday_surcharge: Decimal
    capacity: int
    display_order: Optional[int] = 0
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class HolidayCreate(BaseModel):
    """A single date, or an inclusive start_date..end_date range"""
    holiday_date: Optional[date] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    holiday_name: Optional[str] = Field(None, max_length=100)
    is_surcharge: bool = True

    @model_validator(mode='after')
    def check_dates(self):
        if self.holiday_date is None and (self.start_date is None or self.end_date is None):
            raise ValueError("Provide holiday_date or both start_date and end_date")
        if self.holiday_date is not None and (self.start_date or self.end_date):
            raise ValueError("Provide holiday_date or a range, not both")
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    def dates(self) -> List[date]:
        if self.holiday_date is not None:
            return [self.holiday_date]
        days = (self.end_date - self.start_date).days
        return [self.start_date + timedelta(days=i) for i in range(days + 1)]


class HolidayResponse(BaseModel):
    id: int
    holiday_date: date
    holiday_name: Optional[str] = None
    is_surcharge: bool

    class Config:
        from_attributes = True


class HolidayCreateResponse(BaseModel):
    added: List[HolidayResponse]
    skipped: List[date] = Field(default_factory=list, description="Dates already in the calendar")


class NotificationPolicyUpdate(BaseModel):
    is_enabled: Optional[bool] = None
    offset_days: Optional[int] = Field(None, ge=0, le=60)
    send_hour: Optional[int] = Field(None, ge=0, le=23)


class NotificationPolicyResponse(BaseModel):
    kind: str
    is_enabled: bool
    offset_days: int
    send_hour: int
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
