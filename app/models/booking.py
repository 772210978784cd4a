import json
from datetime import datetime
from sqlalchemy import (
    Column, String, Date, Numeric, Text, ForeignKey, DateTime, Index, Boolean, Integer,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from ..database import Base
import enum


class BookingStatus(str, enum.Enum):
    RESERVED = "reserved"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class PaymentMethod(str, enum.Enum):
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    OTHER = "other"


class PaymentAmountType(str, enum.Enum):
    """How much of the total is due up front"""
    FULL = "full"
    DEPOSIT = "deposit"


class NotificationKind(str, enum.Enum):
    # Time-triggered by the notification scheduler
    PAYMENT_REMINDER = "payment_reminder"
    CHECKIN_REMINDER = "checkin_reminder"
    FEEDBACK_REQUEST = "feedback_request"
    # Event-triggered
    CANCEL_NOTIFICATION = "cancel_notification"
    PAYMENT_RECEIVED = "payment_received"
    BOOKING_CONFIRMATION = "booking_confirmation"


SCHEDULED_KINDS = (
    NotificationKind.PAYMENT_REMINDER,
    NotificationKind.CHECKIN_REMINDER,
    NotificationKind.FEEDBACK_REQUEST,
)

# Statuses that hold inventory
OCCUPYING_STATUSES = (BookingStatus.RESERVED.value, BookingStatus.ACTIVE.value)


class CancellationReason(str, enum.Enum):
    HOLD_EXPIRED = "hold_expired"
    OPERATOR = "operator"


class LedgerStatus(str, enum.Enum):
    CLAIMED = "claimed"  # Dispatch in flight
    SENT = "sent"


class Booking(Base):
    __tablename__ = "bookings"

    booking_id = Column(String(20), primary_key=True)

    # Stay window: [check_in_date, check_out_date)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    room_type = Column(String(50), ForeignKey("room_types.name", ondelete="RESTRICT"), nullable=False)

    guest_name = Column(String(100), nullable=False)
    guest_phone = Column(String(20), nullable=True)
    guest_email = Column(String(255), nullable=True)
    adults = Column(Integer, default=0)
    children = Column(Integer, default=0)

    # Commercial
    nights = Column(Integer, nullable=False, default=0)
    price_per_night = Column(Numeric(10, 2), default=0)  # Average, display only
    total_amount = Column(Numeric(10, 2), default=0)  # Stay + add-ons
    final_amount = Column(Numeric(10, 2), default=0)  # Amount due now
    payment_amount_type = Column(String(20), default=PaymentAmountType.FULL.value)
    deposit_percentage = Column(Integer, nullable=True)
    addons = Column(Text, nullable=True)  # JSON list of {name, unit_price, quantity}
    addons_total = Column(Numeric(10, 2), default=0)

    payment_method = Column(String(20), nullable=False, default=PaymentMethod.BANK_TRANSFER.value)
    status = Column(String(20), nullable=False, default=BookingStatus.RESERVED.value)
    cancellation_reason = Column(String(30), nullable=True)  # CancellationReason
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    # Operator-entered bookings never receive guest notifications
    suppress_notifications = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    version_id = Column(Integer, nullable=False, default=1)

    notification_records = relationship(
        "BookingNotification",
        back_populates="booking",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    __table_args__ = (
        Index("ix_booking_room_dates", "room_type", "check_in_date", "check_out_date"),
        Index("ix_booking_status_payment", "status", "payment_status", "payment_method"),
        CheckConstraint("check_out_date > check_in_date", name="ck_booking_window"),
    )

    @property
    def notifications_sent(self) -> set:
        """Kinds already dispatched successfully"""
        return {
            record.kind for record in self.notification_records
            if record.status == LedgerStatus.SENT.value
        }

    @property
    def addon_items(self) -> list:
        if not self.addons:
            return []
        try:
            return json.loads(self.addons)
        except (json.JSONDecodeError, TypeError):
            return []

    @property
    def is_deposit(self) -> bool:
        return self.payment_amount_type == PaymentAmountType.DEPOSIT.value

    def __repr__(self):
        return f"<Booking {self.booking_id} {self.room_type} {self.check_in_date} {self.status}/{self.payment_status}>"


class BookingNotification(Base):
    """
    Idempotency ledger for guest notifications.

    One row per (booking, kind). The unique constraint is the atomic
    "add kind if absent" primitive: inserting a CLAIMED row reserves the
    dispatch, flipping it to SENT records success.
    """
    __tablename__ = "booking_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_id = Column(
        String(20), ForeignKey("bookings.booking_id", ondelete="CASCADE"), nullable=False, index=True
    )
    kind = Column(String(40), nullable=False)
    status = Column(String(20), nullable=False, default=LedgerStatus.CLAIMED.value)
    claimed_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    sent_at = Column(DateTime, nullable=True)

    booking = relationship("Booking", back_populates="notification_records")

    __table_args__ = (
        UniqueConstraint("booking_id", "kind", name="uq_booking_notification_kind"),
    )

    def __repr__(self):
        return f"<BookingNotification {self.booking_id} {self.kind} {self.status}>"
