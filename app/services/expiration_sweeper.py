"""
Expiration Sweeper

Cancels unpaid bank-transfer reservations once their hold period is over:
    deadline = created_at + hold_days   (hold_days = payment_reminder offset)
    now > deadline  ->  cancelled, then one cancel_notification

The cancel is a conditional UPDATE on (status=reserved, payment_status=pending),
so a payment confirmed between the select and the update wins. A failed
notification never re-triggers the cancel; the ledger lets the next sweep
retry the notification alone.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.booking import (
    Booking, BookingNotification, BookingStatus, CancellationReason, LedgerStatus, NotificationKind,
    PaymentMethod, PaymentStatus
)
from ..utils.logging_config import get_logger
from .booking_lifecycle import TransitionEvent, apply_transition
from .notification_dispatcher import DispatchOutcome, NotificationDispatcher, build_notification_context
from .notification_policies import get_hold_days
from .notifications import LoggingNotifier, Notifier, PlainTextRenderer, TemplateRenderer

logger = get_logger(__name__)


@dataclass
class SweepResult:
    """Counters for one sweep"""
    checked: int = 0
    cancelled: int = 0
    notified: int = 0
    notify_failed: int = 0
    errors: int = 0
    cancelled_ids: List[str] = field(default_factory=list)


class ExpirationSweeper:

    def __init__(
        self,
        db: Session,
        notifier: Optional[Notifier] = None,
        renderer: Optional[TemplateRenderer] = None
    ):
        self.db = db
        self.dispatcher = NotificationDispatcher(
            db, notifier or LoggingNotifier(), renderer or PlainTextRenderer()
        )

    def _unpaid_reservations(self):
        return self.db.query(Booking).filter(
            Booking.payment_method == PaymentMethod.BANK_TRANSFER.value,
            Booking.status == BookingStatus.RESERVED.value,
            Booking.payment_status == PaymentStatus.PENDING.value
        )

    def _cancel_if_unpaid(self, booking_id: str, now: datetime) -> bool:
        """Conditional cancel; False when the booking changed underneath us"""
        status, _ = apply_transition(
            BookingStatus.RESERVED, PaymentStatus.PENDING, TransitionEvent.EXPIRE
        )
        updated = self.db.query(Booking).filter(
            Booking.booking_id == booking_id,
            Booking.status == BookingStatus.RESERVED.value,
            Booking.payment_status == PaymentStatus.PENDING.value
        ).update(
            {
                "status": status.value,
                "cancellation_reason": CancellationReason.HOLD_EXPIRED.value,
                "updated_at": now,
                "version_id": Booking.version_id + 1,
            },
            synchronize_session=False
        )
        self.db.commit()
        return updated == 1

    def _pending_cancel_notices(self) -> List[Booking]:
        """Expired bookings whose cancel_notification never went out"""
        sent = select(BookingNotification.booking_id).where(
            BookingNotification.kind == NotificationKind.CANCEL_NOTIFICATION.value,
            BookingNotification.status == LedgerStatus.SENT.value
        )
        return self.db.query(Booking).filter(
            Booking.status == BookingStatus.CANCELLED.value,
            Booking.cancellation_reason == CancellationReason.HOLD_EXPIRED.value,
            Booking.suppress_notifications == False,
            ~Booking.booking_id.in_(sent)
        ).all()

    def _notify(self, booking: Booking, hold_days: int, now: datetime, result: SweepResult) -> None:
        context = build_notification_context(self.db, booking, hold_days)
        outcome = self.dispatcher.dispatch(
            booking, NotificationKind.CANCEL_NOTIFICATION, context, now=now
        )
        if outcome == DispatchOutcome.SENT:
            result.notified += 1
        elif outcome == DispatchOutcome.FAILED:
            result.notify_failed += 1

    def run(self, now: Optional[datetime] = None) -> SweepResult:
        """
        One sweep. now is naive UTC (defaults to the current time).

        Per-booking failures are counted and logged; the sweep continues.
        """
        now = now or datetime.utcnow()
        started = time.monotonic()
        result = SweepResult()

        hold_days = get_hold_days(self.db)
        cutoff = now - timedelta(days=hold_days)

        candidates = self._unpaid_reservations().all()
        result.checked = len(candidates)

        # now > created_at + hold  <=>  created_at < now - hold
        expired = [b for b in candidates if b.created_at < cutoff]
        expired_ids = [b.booking_id for b in expired]

        for booking_id in expired_ids:
            try:
                if not self._cancel_if_unpaid(booking_id, now):
                    logger.info(f"Booking {booking_id} changed before expiry, skipped")
                    continue
            except SQLAlchemyError as e:
                self.db.rollback()
                result.errors += 1
                logger.error(f"Failed to expire booking {booking_id}: {e}")
                continue

            result.cancelled += 1
            result.cancelled_ids.append(booking_id)
            logger.booking_status_changed(
                booking_id, "reserved/pending", "cancelled/pending", reason="hold_expired"
            )

        # Notify freshly expired bookings plus earlier ones whose notice failed
        try:
            to_notify = self._pending_cancel_notices()
        except SQLAlchemyError as e:
            self.db.rollback()
            result.errors += 1
            logger.error(f"Could not load expired bookings to notify: {e}")
            to_notify = []

        for booking in to_notify:
            booking_id = booking.booking_id
            try:
                self._notify(booking, hold_days, now, result)
            except SQLAlchemyError as e:
                self.db.rollback()
                result.notify_failed += 1
                logger.error(f"Cancel notification for booking {booking_id} failed: {e}")

        logger.job_finished(
            "expiration_sweep",
            round((time.monotonic() - started) * 1000, 1),
            checked=result.checked,
            cancelled=result.cancelled,
            notified=result.notified,
            notify_failed=result.notify_failed,
            errors=result.errors,
        )
        return result
