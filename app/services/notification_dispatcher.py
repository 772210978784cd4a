"""
Notification Dispatcher

Single path for every guest notification, scheduled or event-driven.
Guarantees at most one successful dispatch per (booking, kind):

1. Claim: insert a CLAIMED ledger row. The (booking_id, kind) unique
   constraint makes this an atomic "add if absent"; losing the race means
   another worker owns the dispatch.
2. Render + send via the external collaborators.
3. Success: flip the row to SENT. Failure: delete the claim so the next
   cycle retries.

A CLAIMED row older than the claim TTL (process died mid-send) is
reclaimable.
"""

import enum
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..models.booking import Booking, BookingNotification, LedgerStatus, NotificationKind
from ..models.room_type import RoomType
from ..utils.logging_config import get_logger
from .notification_policies import get_hold_days, hold_deadline, to_local
from .notifications import Notifier, TemplateRenderer

logger = get_logger(__name__)


class DispatchOutcome(str, enum.Enum):
    SENT = "sent"
    SKIPPED = "skipped"  # Already sent, claimed elsewhere, or suppressed
    FAILED = "failed"


def build_notification_context(
    db: Session, booking: Booking, hold_days: Optional[int] = None
) -> Dict[str, Any]:
    """Values the renderer needs beyond the booking row itself"""
    if hold_days is None:
        hold_days = get_hold_days(db)
    deadline = to_local(hold_deadline(booking, hold_days))
    room_type = db.query(RoomType).filter(RoomType.name == booking.room_type).first()
    return {
        "hold_days": hold_days,
        "payment_deadline": deadline.strftime("%Y-%m-%d %H:%M"),
        "room_type_display": room_type.display_name if room_type else booking.room_type,
    }


class NotificationLedger:
    """Atomic operations on booking_notifications"""

    def __init__(self, db: Session, claim_ttl: Optional[timedelta] = None):
        self.db = db
        self.claim_ttl = claim_ttl or timedelta(minutes=settings.notification_claim_ttl_minutes)

    def claim(self, booking_id: str, kind: NotificationKind, now: datetime) -> bool:
        """Reserve the dispatch. Returns False if already sent or claimed."""
        existing = self.db.query(BookingNotification).filter(
            BookingNotification.booking_id == booking_id,
            BookingNotification.kind == kind.value
        ).first()

        if existing is not None:
            if existing.status == LedgerStatus.SENT.value:
                return False
            cutoff = now - self.claim_ttl
            # Conditional update: only one worker can take over a stale claim
            taken = self.db.query(BookingNotification).filter(
                BookingNotification.id == existing.id,
                BookingNotification.status == LedgerStatus.CLAIMED.value,
                BookingNotification.claimed_at < cutoff
            ).update({"claimed_at": now}, synchronize_session=False)
            self.db.commit()
            if taken:
                logger.warning(f"Reclaimed stale {kind.value} claim for booking {booking_id}")
            return taken == 1

        self.db.add(BookingNotification(
            booking_id=booking_id,
            kind=kind.value,
            status=LedgerStatus.CLAIMED.value,
            claimed_at=now,
        ))
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(f"{kind.value} for booking {booking_id} already claimed by another worker")
            return False
        return True

    def mark_sent(self, booking_id: str, kind: NotificationKind, now: datetime) -> None:
        self.db.query(BookingNotification).filter(
            BookingNotification.booking_id == booking_id,
            BookingNotification.kind == kind.value
        ).update(
            {"status": LedgerStatus.SENT.value, "sent_at": now},
            synchronize_session=False
        )
        self.db.commit()

    def release(self, booking_id: str, kind: NotificationKind) -> None:
        self.db.query(BookingNotification).filter(
            BookingNotification.booking_id == booking_id,
            BookingNotification.kind == kind.value,
            BookingNotification.status == LedgerStatus.CLAIMED.value
        ).delete(synchronize_session="fetch")
        self.db.commit()


class NotificationDispatcher:
    """Claim, render, send, record"""

    def __init__(
        self,
        db: Session,
        notifier: Notifier,
        renderer: TemplateRenderer,
        ledger: Optional[NotificationLedger] = None
    ):
        self.db = db
        self.notifier = notifier
        self.renderer = renderer
        self.ledger = ledger or NotificationLedger(db)

    def dispatch(
        self,
        booking: Booking,
        kind: NotificationKind,
        context: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None
    ) -> DispatchOutcome:
        now = now or datetime.utcnow()
        booking_id = booking.booking_id

        if booking.suppress_notifications:
            return DispatchOutcome.SKIPPED
        destination = booking.guest_email
        if not destination:
            logger.warning(f"Booking {booking_id} has no guest email, {kind.value} not sent")
            return DispatchOutcome.SKIPPED

        try:
            if not self.ledger.claim(booking_id, kind, now):
                return DispatchOutcome.SKIPPED
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Could not claim {kind.value} for booking {booking_id}: {e}")
            return DispatchOutcome.FAILED

        try:
            message = self.renderer.render(kind, booking, context or {})
            sent = self.notifier.send(destination, message.subject, message.body)
        except Exception as e:
            logger.error(f"Dispatch of {kind.value} for booking {booking_id} raised: {e}")
            sent = False

        if not sent:
            logger.notification_dispatched(booking_id, kind.value, DispatchOutcome.FAILED.value)
            self._release_quietly(booking_id, kind)
            return DispatchOutcome.FAILED

        try:
            self.ledger.mark_sent(booking_id, kind, now)
        except SQLAlchemyError as e:
            # Claim stays in place; it blocks re-sends until the TTL expires
            self.db.rollback()
            logger.error(f"Sent {kind.value} for booking {booking_id} but could not record it: {e}")

        logger.notification_dispatched(booking_id, kind.value, DispatchOutcome.SENT.value)
        return DispatchOutcome.SENT

    def _release_quietly(self, booking_id: str, kind: NotificationKind) -> None:
        try:
            self.ledger.release(booking_id, kind)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Could not release {kind.value} claim for booking {booking_id}: {e}")
