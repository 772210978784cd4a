"""
Notification Policy Model

Timing rule per scheduled notification kind:
- payment_reminder: anchored to created_at + offset_days (offset = hold period)
- checkin_reminder: anchored to check_in_date - offset_days
- feedback_request: anchored to check_out_date + offset_days

send_hour is the local hour-of-day at which the scheduler dispatches.
"""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Boolean
from ..database import Base
from .booking import NotificationKind


DEFAULT_POLICIES = {
    NotificationKind.PAYMENT_REMINDER: {"offset_days": 3, "send_hour": 9},
    NotificationKind.CHECKIN_REMINDER: {"offset_days": 1, "send_hour": 9},
    NotificationKind.FEEDBACK_REQUEST: {"offset_days": 1, "send_hour": 10},
}


class NotificationPolicy(Base):
    __tablename__ = "notification_policies"

    kind = Column(String(40), primary_key=True)
    is_enabled = Column(Boolean, default=True, nullable=False)
    offset_days = Column(Integer, nullable=False, default=1)
    send_hour = Column(Integer, nullable=False, default=9)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<NotificationPolicy {self.kind} enabled={self.is_enabled} offset={self.offset_days} hour={self.send_hour}>"
