"""
Expiration sweeper tests

Hold period is the payment_reminder offset (3 days in the seeded policies).
"""

import pytest
from datetime import datetime, date

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.models import Booking, BookingNotification, CancellationReason
from app.services.expiration_sweeper import ExpirationSweeper

CREATED = datetime(2024, 1, 1, 0, 0)
BEFORE_DEADLINE = datetime(2024, 1, 3, 23, 59)
AFTER_DEADLINE = datetime(2024, 1, 4, 0, 1)


def _reload(db, booking_id):
    db.expire_all()
    return db.query(Booking).filter(Booking.booking_id == booking_id).one()


class TestExpirationSweeper:

    def test_no_action_before_deadline(self, db, notifier, make_booking):
        booking = make_booking(created_at=CREATED)

        result = ExpirationSweeper(db, notifier).run(now=BEFORE_DEADLINE)

        assert result.checked == 1
        assert result.cancelled == 0
        assert _reload(db, booking.booking_id).status == "reserved"
        assert notifier.sent == []

    def test_cancels_after_deadline_and_notifies_once(self, db, notifier, make_booking):
        booking = make_booking(created_at=CREATED)
        sweeper = ExpirationSweeper(db, notifier)

        result = sweeper.run(now=AFTER_DEADLINE)

        assert result.cancelled == 1
        assert result.notified == 1
        assert result.cancelled_ids == [booking.booking_id]

        expired = _reload(db, booking.booking_id)
        assert expired.status == "cancelled"
        assert expired.payment_status == "pending"
        assert expired.cancellation_reason == CancellationReason.HOLD_EXPIRED.value
        assert "cancel_notification" in expired.notifications_sent

        # A later sweep finds nothing new to do
        again = sweeper.run(now=datetime(2024, 1, 4, 1, 0))
        assert again.cancelled == 0
        assert again.notified == 0
        assert len(notifier.sent) == 1

    def test_failed_notice_is_retried_without_recancelling(self, db, notifier, make_booking):
        booking = make_booking(created_at=CREATED)
        notifier.succeed = False

        first = ExpirationSweeper(db, notifier).run(now=AFTER_DEADLINE)
        assert first.cancelled == 1
        assert first.notify_failed == 1
        assert db.query(BookingNotification).count() == 0

        notifier.succeed = True
        second = ExpirationSweeper(db, notifier).run(now=datetime(2024, 1, 4, 1, 0))
        assert second.cancelled == 0
        assert second.notified == 1
        assert notifier.sent[0][1] == f"Booking cancelled - {booking.booking_id}"

    @pytest.mark.parametrize("overrides", [
        {"payment_status": "paid", "status": "active"},
        {"payment_method": "card"},
        {"status": "active"},
    ])
    def test_only_unpaid_bank_transfer_reservations_expire(self, db, notifier, make_booking, overrides):
        booking = make_booking(created_at=CREATED, **overrides)

        result = ExpirationSweeper(db, notifier).run(now=AFTER_DEADLINE)

        assert result.cancelled == 0
        assert _reload(db, booking.booking_id).status != "cancelled"

    def test_operator_cancellation_gets_no_expiry_notice(self, db, notifier, make_booking):
        make_booking(status="cancelled", cancellation_reason=CancellationReason.OPERATOR.value)

        result = ExpirationSweeper(db, notifier).run(now=AFTER_DEADLINE)

        assert result.notified == 0
        assert notifier.sent == []

    def test_suppressed_booking_expires_silently(self, db, notifier, make_booking):
        booking = make_booking(created_at=CREATED, suppress_notifications=True)

        result = ExpirationSweeper(db, notifier).run(now=AFTER_DEADLINE)

        assert result.cancelled == 1
        assert notifier.sent == []
        assert _reload(db, booking.booking_id).status == "cancelled"

    def test_payment_wins_race_with_sweep(self, db, notifier, make_booking):
        """Conditional cancel does nothing once the booking is paid"""
        booking = make_booking(created_at=CREATED, status="active", payment_status="paid")
        sweeper = ExpirationSweeper(db, notifier)

        assert sweeper._cancel_if_unpaid(booking.booking_id, AFTER_DEADLINE) is False
        assert _reload(db, booking.booking_id).status == "active"

    def test_hold_follows_policy_offset(self, db, notifier, make_booking, policy):
        policy("payment_reminder", offset_days=1)
        make_booking(created_at=CREATED)

        result = ExpirationSweeper(db, notifier).run(now=datetime(2024, 1, 2, 0, 1))
        assert result.cancelled == 1

    def test_cancel_bumps_version(self, db, notifier, make_booking):
        booking = make_booking(created_at=CREATED)
        version = booking.version_id

        ExpirationSweeper(db, notifier).run(now=AFTER_DEADLINE)

        assert _reload(db, booking.booking_id).version_id == version + 1
