"""
Notification Scheduler

Hourly poll over the three time-triggered notification kinds. For each
enabled policy, at the policy's local send hour only:

    payment_reminder   last send_hour slot before (created_at + offset_days)
                       falls on today
                       bank_transfer, payment pending, status reserved|active
    checkin_reminder   check_in_date == today + offset_days
                       status active, payment paid
    feedback_request   check_out_date == today - offset_days
                       status active

Bookings that already have the kind recorded as sent are excluded in the
query; the dispatcher's claim row covers the race between two pollers.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, date, timedelta
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.booking import (
    Booking, BookingNotification, BookingStatus, LedgerStatus, NotificationKind,
    PaymentMethod, PaymentStatus, SCHEDULED_KINDS, OCCUPYING_STATUSES
)
from ..models.notification_policy import NotificationPolicy
from ..utils.logging_config import get_logger
from .notification_dispatcher import DispatchOutcome, NotificationDispatcher, build_notification_context
from .notification_policies import get_hold_days, get_policy, reminder_date, to_local
from .notifications import LoggingNotifier, Notifier, PlainTextRenderer, TemplateRenderer

logger = get_logger(__name__)


@dataclass
class DispatchSummary:
    """Outcome of one kind in one poll"""
    kind: str
    skipped_reason: Optional[str] = None  # no_policy | disabled | outside_send_hour | error
    candidates: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    sent_ids: List[str] = field(default_factory=list)


class NotificationScheduler:

    def __init__(
        self,
        db: Session,
        notifier: Optional[Notifier] = None,
        renderer: Optional[TemplateRenderer] = None,
        tz_name: Optional[str] = None
    ):
        self.db = db
        self.tz_name = tz_name
        self.dispatcher = NotificationDispatcher(
            db, notifier or LoggingNotifier(), renderer or PlainTextRenderer()
        )

    def _not_yet_sent(self, kind: NotificationKind):
        sent = select(BookingNotification.booking_id).where(
            BookingNotification.kind == kind.value,
            BookingNotification.status == LedgerStatus.SENT.value
        )
        return self.db.query(Booking).filter(
            Booking.suppress_notifications == False,
            ~Booking.booking_id.in_(sent)
        )

    def candidates_for(
        self,
        kind: NotificationKind,
        policy: NotificationPolicy,
        today: date
    ) -> List[Booking]:
        """Bookings due for this kind on the given local date"""
        offset = timedelta(days=int(policy.offset_days or 0))
        query = self._not_yet_sent(kind)

        if kind == NotificationKind.PAYMENT_REMINDER:
            # created_at is UTC; bound it loosely in SQL, match the reminder slot exactly below
            anchor = datetime.combine(today - offset, datetime.min.time())
            rows = query.filter(
                Booking.payment_method == PaymentMethod.BANK_TRANSFER.value,
                Booking.payment_status == PaymentStatus.PENDING.value,
                Booking.status.in_(OCCUPYING_STATUSES),
                Booking.created_at >= anchor - timedelta(days=1),
                Booking.created_at < anchor + timedelta(days=3)
            ).all()
            return [
                b for b in rows
                if reminder_date(to_local(b.created_at + offset, self.tz_name), policy.send_hour) == today
            ]

        elif kind == NotificationKind.CHECKIN_REMINDER:
            return query.filter(
                Booking.check_in_date == today + offset,
                Booking.status == BookingStatus.ACTIVE.value,
                Booking.payment_status == PaymentStatus.PAID.value
            ).all()

        elif kind == NotificationKind.FEEDBACK_REQUEST:
            return query.filter(
                Booking.check_out_date == today - offset,
                Booking.status == BookingStatus.ACTIVE.value
            ).all()

        raise ValueError(f"{kind.value} is not a scheduled notification kind")

    def run_kind(self, kind: NotificationKind, now: datetime) -> DispatchSummary:
        summary = DispatchSummary(kind=kind.value)
        local_now = to_local(now, self.tz_name)

        policy = get_policy(self.db, kind)
        if policy is None:
            summary.skipped_reason = "no_policy"
            return summary
        if not policy.is_enabled:
            summary.skipped_reason = "disabled"
            return summary
        if local_now.hour != policy.send_hour:
            summary.skipped_reason = "outside_send_hour"
            return summary

        candidates = self.candidates_for(kind, policy, local_now.date())
        summary.candidates = len(candidates)
        hold_days = get_hold_days(self.db)

        for booking in candidates:
            booking_id = booking.booking_id
            try:
                context = build_notification_context(self.db, booking, hold_days)
                outcome = self.dispatcher.dispatch(booking, kind, context, now=now)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"{kind.value} for booking {booking_id} failed: {e}")
                outcome = DispatchOutcome.FAILED

            if outcome == DispatchOutcome.SENT:
                summary.sent += 1
                summary.sent_ids.append(booking_id)
            elif outcome == DispatchOutcome.FAILED:
                summary.failed += 1
            else:
                summary.skipped += 1

        return summary

    def run(self, now: Optional[datetime] = None) -> Dict[str, DispatchSummary]:
        """One poll over every scheduled kind. now is naive UTC."""
        now = now or datetime.utcnow()
        started = time.monotonic()
        results: Dict[str, DispatchSummary] = {}

        for kind in SCHEDULED_KINDS:
            try:
                results[kind.value] = self.run_kind(kind, now)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Notification poll for {kind.value} failed: {e}")
                results[kind.value] = DispatchSummary(kind=kind.value, skipped_reason="error")

        logger.job_finished(
            "notification_poll",
            round((time.monotonic() - started) * 1000, 1),
            **{
                kind: (s.skipped_reason or f"{s.sent}/{s.candidates} sent, {s.failed} failed")
                for kind, s in results.items()
            }
        )
        return results
