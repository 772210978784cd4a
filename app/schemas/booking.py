from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal
import re

from ..models.booking import BookingStatus, PaymentStatus, PaymentMethod, PaymentAmountType


def _sanitize(v):
    """Strip script tags and inline event handlers from free text"""
    if v is None or not isinstance(v, str):
        return v
    v = re.sub(r'<script[^>]*>.*?</script>', '', v, flags=re.IGNORECASE | re.DOTALL)
    v = re.sub(r'on\w+\s*=', '', v, flags=re.IGNORECASE)
    return v.strip()


class AddOn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    unit_price: Decimal = Field(..., ge=0)
    quantity: int = Field(1, ge=1, le=100)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class BookingCreate(BaseModel):
    """Public booking request"""
    check_in_date: date
    check_out_date: date
    room_type: str = Field(..., min_length=1, max_length=50)
    guest_name: str = Field(..., min_length=1, max_length=100)
    guest_phone: str = Field(..., min_length=1, max_length=20)
    guest_email: EmailStr
    adults: int = Field(1, ge=0, le=50)
    children: int = Field(0, ge=0, le=50)
    payment_method: PaymentMethod = PaymentMethod.BANK_TRANSFER
    payment_amount_type: PaymentAmountType = PaymentAmountType.FULL
    addons: List[AddOn] = Field(default_factory=list)

    @field_validator('guest_name', 'guest_phone', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return _sanitize(v)

    @field_validator('payment_method')
    @classmethod
    def validate_public_method(cls, v: PaymentMethod) -> PaymentMethod:
        if v == PaymentMethod.OTHER:
            raise ValueError('Payment method must be bank_transfer or card')
        return v

    @model_validator(mode='after')
    def validate_dates(self):
        """validate that check_out_date is after check_in_date"""
        if self.check_out_date <= self.check_in_date:
            raise ValueError('Check-out date must be after check-in date')
        return self


class ManualBookingCreate(BaseModel):
    """Operator-entered booking; state is set explicitly and guests are not notified"""
    check_in_date: date
    check_out_date: date
    room_type: str = Field(..., min_length=1, max_length=50)
    guest_name: str = Field(..., min_length=1, max_length=100)
    guest_phone: Optional[str] = Field(None, max_length=20)
    guest_email: Optional[EmailStr] = None
    adults: int = Field(1, ge=0, le=50)
    children: int = Field(0, ge=0, le=50)
    payment_method: PaymentMethod = PaymentMethod.OTHER
    status: BookingStatus = BookingStatus.ACTIVE
    payment_status: PaymentStatus = PaymentStatus.PAID
    total_amount: Optional[Decimal] = Field(None, ge=0, description="Overrides the computed price")
    addons: List[AddOn] = Field(default_factory=list)

    @field_validator('guest_name', 'guest_phone', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return _sanitize(v)

    @model_validator(mode='after')
    def validate_dates(self):
        if self.check_out_date <= self.check_in_date:
            raise ValueError('Check-out date must be after check-in date')
        if self.status == BookingStatus.CANCELLED:
            raise ValueError('A new booking cannot start cancelled')
        return self


class BookingUpdate(BaseModel):
    """Operator edit. Only fields that are set are applied."""
    guest_name: Optional[str] = Field(None, min_length=1, max_length=100)
    guest_phone: Optional[str] = Field(None, max_length=20)
    guest_email: Optional[EmailStr] = None
    adults: Optional[int] = Field(None, ge=0, le=50)
    children: Optional[int] = Field(None, ge=0, le=50)
    check_in_date: Optional[date] = None
    check_out_date: Optional[date] = None
    room_type: Optional[str] = Field(None, min_length=1, max_length=50)
    total_amount: Optional[Decimal] = Field(None, ge=0)
    final_amount: Optional[Decimal] = Field(None, ge=0)
    payment_method: Optional[PaymentMethod] = None
    status: Optional[BookingStatus] = None
    payment_status: Optional[PaymentStatus] = None

    @field_validator('guest_name', 'guest_phone', mode='before')
    @classmethod
    def sanitize_text_fields(cls, v):
        return _sanitize(v)


class BookingResponse(BaseModel):
    booking_id: str
    check_in_date: date
    check_out_date: date
    room_type: str
    guest_name: str
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    adults: int = 0
    children: int = 0
    nights: int
    price_per_night: Decimal
    total_amount: Decimal
    final_amount: Decimal
    addons_total: Decimal = Decimal("0")
    addons: List[AddOn] = Field(default_factory=list)
    payment_amount_type: PaymentAmountType
    deposit_percentage: Optional[int] = None
    payment_method: PaymentMethod
    status: BookingStatus
    payment_status: PaymentStatus
    notifications_sent: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_booking(cls, booking) -> "BookingResponse":
        return cls(
            booking_id=booking.booking_id,
            check_in_date=booking.check_in_date,
            check_out_date=booking.check_out_date,
            room_type=booking.room_type,
            guest_name=booking.guest_name,
            guest_phone=booking.guest_phone,
            guest_email=booking.guest_email,
            adults=booking.adults or 0,
            children=booking.children or 0,
            nights=booking.nights or 0,
            price_per_night=booking.price_per_night or Decimal("0"),
            total_amount=booking.total_amount or Decimal("0"),
            final_amount=booking.final_amount or Decimal("0"),
            addons_total=booking.addons_total or Decimal("0"),
            addons=[AddOn(**item) for item in booking.addon_items],
            payment_amount_type=booking.payment_amount_type,
            deposit_percentage=booking.deposit_percentage,
            payment_method=booking.payment_method,
            status=booking.status,
            payment_status=booking.payment_status,
            notifications_sent=sorted(booking.notifications_sent),
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class BookingCreateResult(BaseModel):
    """Outcome of a successful public booking request"""
    booking_id: str
    status: BookingStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    nights: int
    total_amount: Decimal
    final_amount: Decimal
    payment_deadline: Optional[datetime] = None
