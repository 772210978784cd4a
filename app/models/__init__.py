# Models package
from .booking import (
    Booking,
    BookingNotification,
    BookingStatus,
    PaymentStatus,
    PaymentMethod,
    PaymentAmountType,
    NotificationKind,
    LedgerStatus,
    CancellationReason,
    SCHEDULED_KINDS,
    OCCUPYING_STATUSES,
)
from .room_type import RoomType
from .holiday import Holiday
from .notification_policy import NotificationPolicy, DEFAULT_POLICIES

__all__ = [
    "Booking", "BookingNotification",
    "BookingStatus", "PaymentStatus", "PaymentMethod", "PaymentAmountType",
    "NotificationKind", "LedgerStatus", "CancellationReason", "SCHEDULED_KINDS", "OCCUPYING_STATUSES",
    "RoomType",
    "Holiday",
    "NotificationPolicy", "DEFAULT_POLICIES",
]
