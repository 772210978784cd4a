"""
Notification policy lookups and business-clock helpers.

Timestamps are stored as naive UTC. "Today" and "the current hour" are
always evaluated in the business timezone.
"""

import logging
from datetime import datetime, date, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ..config import settings
from ..models.booking import Booking, NotificationKind, SCHEDULED_KINDS
from ..models.notification_policy import NotificationPolicy, DEFAULT_POLICIES

logger = logging.getLogger(__name__)


def to_local(now_utc: datetime, tz_name: Optional[str] = None) -> datetime:
    """Convert a naive UTC timestamp to the business timezone"""
    tz = ZoneInfo(tz_name or settings.business_timezone)
    if now_utc.tzinfo is None:
        now_utc = now_utc.replace(tzinfo=timezone.utc)
    return now_utc.astimezone(tz)


def local_today(now_utc: Optional[datetime] = None, tz_name: Optional[str] = None) -> date:
    return to_local(now_utc or datetime.utcnow(), tz_name).date()


def get_policy(db: Session, kind: NotificationKind) -> Optional[NotificationPolicy]:
    return db.query(NotificationPolicy).filter(NotificationPolicy.kind == kind.value).first()


def get_hold_days(db: Session) -> int:
    """Hold period for unpaid bank transfers (payment_reminder offset)"""
    policy = get_policy(db, NotificationKind.PAYMENT_REMINDER)
    if policy is None or policy.offset_days is None:
        return settings.default_hold_days
    return int(policy.offset_days)


def hold_deadline(booking: Booking, hold_days: int) -> datetime:
    """Naive UTC instant after which an unpaid reservation is released"""
    return booking.created_at + timedelta(days=hold_days)


def reminder_date(deadline_local: datetime, send_hour: int) -> date:
    """
    Local date of the last send_hour slot strictly before the deadline.

    A deadline at or before send_hour on its own day moves the reminder to
    the previous day.
    """
    if deadline_local.time() > time(send_hour):
        return deadline_local.date()
    return deadline_local.date() - timedelta(days=1)


def seed_default_policies(db: Session) -> int:
    """Insert missing policy rows; existing rows are left untouched"""
    created = 0
    for kind in SCHEDULED_KINDS:
        if get_policy(db, kind) is None:
            defaults = DEFAULT_POLICIES[kind]
            offset = defaults["offset_days"]
            if kind == NotificationKind.PAYMENT_REMINDER:
                offset = settings.default_hold_days
            db.add(NotificationPolicy(
                kind=kind.value,
                is_enabled=True,
                offset_days=offset,
                send_hour=defaults["send_hour"],
            ))
            created += 1
    if created:
        db.commit()
        logger.info(f"Seeded {created} notification policies")
    return created
