"""
Booking lifecycle tests

Covers:
- The pure transition function (promotion, terminal cancelled state)
- Create / confirm / cancel / edit / delete through BookingLifecycleManager
- Double-booking rejection and back-to-back stays
"""

import pytest
from pydantic import ValidationError as PydanticValidationError
from datetime import date, datetime
from decimal import Decimal

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.models import Booking, BookingStatus, PaymentStatus, PaymentAmountType, CancellationReason
from app.schemas.booking import BookingCreate, BookingUpdate, ManualBookingCreate
from app.services.booking_lifecycle import (
    BookingLifecycleManager, TransitionEvent, apply_transition, compute_due_amount
)
from app.utils.exceptions import ConflictError, NotFoundError, ValidationError

NOW = datetime(2024, 1, 1, 2, 0)


def _request(**overrides):
    values = dict(
        check_in_date=date(2024, 2, 1),
        check_out_date=date(2024, 2, 3),
        room_type="standard",
        guest_name="Ada",
        guest_phone="0912345678",
        guest_email="ada@example.com",
        payment_method="bank_transfer",
    )
    values.update(overrides)
    return BookingCreate(**values)


@pytest.fixture
def manager(db, notifier):
    return BookingLifecycleManager(db, notifier=notifier)


class TestApplyTransition:

    def test_create_reserved_pending(self):
        assert apply_transition("reserved", "pending", TransitionEvent.CREATE) == (
            BookingStatus.RESERVED, PaymentStatus.PENDING
        )

    def test_create_reserved_paid_is_promoted(self):
        assert apply_transition("reserved", "paid", TransitionEvent.CREATE) == (
            BookingStatus.ACTIVE, PaymentStatus.PAID
        )

    def test_create_cancelled_rejected(self):
        with pytest.raises(ValidationError):
            apply_transition("cancelled", "pending", TransitionEvent.CREATE)

    def test_confirm_payment_promotes(self):
        assert apply_transition("reserved", "pending", TransitionEvent.CONFIRM_PAYMENT) == (
            BookingStatus.ACTIVE, PaymentStatus.PAID
        )

    def test_confirm_payment_on_active_pending(self):
        assert apply_transition("active", "pending", TransitionEvent.CONFIRM_PAYMENT) == (
            BookingStatus.ACTIVE, PaymentStatus.PAID
        )

    def test_confirm_payment_idempotent(self):
        assert apply_transition("active", "paid", TransitionEvent.CONFIRM_PAYMENT) == (
            BookingStatus.ACTIVE, PaymentStatus.PAID
        )

    @pytest.mark.parametrize("event", [
        TransitionEvent.CONFIRM_PAYMENT, TransitionEvent.CANCEL, TransitionEvent.EXPIRE
    ])
    def test_cancelled_is_terminal(self, event):
        with pytest.raises(ConflictError):
            apply_transition("cancelled", "pending", event)

    def test_edit_cannot_reopen_cancelled(self):
        with pytest.raises(ConflictError):
            apply_transition("cancelled", "pending", TransitionEvent.EDIT, new_status="active")

    def test_edit_cancelled_payment_status_only(self):
        assert apply_transition(
            "cancelled", "pending", TransitionEvent.EDIT, new_payment_status="paid"
        ) == (BookingStatus.CANCELLED, PaymentStatus.PAID)

    def test_expire_requires_unpaid_reservation(self):
        with pytest.raises(ConflictError):
            apply_transition("active", "pending", TransitionEvent.EXPIRE)

    def test_edit_paid_promotes(self):
        assert apply_transition("reserved", "pending", TransitionEvent.EDIT, new_payment_status="paid") == (
            BookingStatus.ACTIVE, PaymentStatus.PAID
        )

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            apply_transition("checked_in", "pending", TransitionEvent.CANCEL)


class TestDueAmount:

    def test_full(self):
        assert compute_due_amount(Decimal("4500"), PaymentAmountType.FULL, 30) == Decimal("4500")

    def test_deposit_rounds_half_up(self):
        assert compute_due_amount(Decimal("4505"), PaymentAmountType.DEPOSIT, 30) == Decimal("1352")


class TestCreateBooking:

    def test_creates_reserved_pending(self, manager, notifier):
        booking = manager.create_booking(_request(), now=NOW)

        assert booking.booking_id.startswith("BK")
        assert len(booking.booking_id) == 10
        assert booking.status == "reserved"
        assert booking.payment_status == "pending"
        assert booking.nights == 2
        assert booking.total_amount == Decimal("4000")
        assert booking.created_at == NOW
        assert notifier.subjects() == [f"Booking received - {booking.booking_id}"]

    def test_card_booking_sends_no_confirmation(self, manager, notifier):
        manager.create_booking(_request(payment_method="card"), now=NOW)
        assert notifier.sent == []

    def test_addons_and_deposit(self, manager):
        booking = manager.create_booking(
            _request(
                payment_amount_type="deposit",
                addons=[{"name": "Breakfast", "unit_price": "250", "quantity": 2}],
            ),
            now=NOW,
        )
        assert booking.addons_total == Decimal("500")
        assert booking.total_amount == Decimal("4500")
        assert booking.final_amount == Decimal("1350")
        assert booking.deposit_percentage == 30

    def test_exact_overlap_rejected(self, manager, db):
        manager.create_booking(_request(), now=NOW)

        with pytest.raises(ConflictError) as exc_info:
            manager.create_booking(_request(guest_email="bob@example.com"), now=NOW)

        assert exc_info.value.code == "ROOM_UNAVAILABLE"
        assert db.query(Booking).count() == 1

    def test_back_to_back_both_succeed(self, manager, db):
        manager.create_booking(_request(), now=NOW)
        manager.create_booking(
            _request(check_in_date=date(2024, 2, 3), check_out_date=date(2024, 2, 5)), now=NOW
        )
        assert db.query(Booking).count() == 2

    def test_past_check_in_rejected(self, manager):
        with pytest.raises(ValidationError):
            manager.create_booking(
                _request(check_in_date=date(2023, 12, 30), check_out_date=date(2023, 12, 31)), now=NOW
            )

    def test_unknown_room_type_is_validation_error(self, manager):
        with pytest.raises(ValidationError):
            manager.create_booking(_request(room_type="penthouse"), now=NOW)


class TestManualBooking:

    def test_defaults_to_active_paid_without_notifications(self, manager, notifier):
        booking = manager.create_manual_booking(ManualBookingCreate(
            check_in_date=date(2024, 2, 1),
            check_out_date=date(2024, 2, 2),
            room_type="standard",
            guest_name="Walk-in",
            guest_email="walkin@example.com",
            total_amount=Decimal("1800"),
        ), now=NOW)

        assert booking.status == "active"
        assert booking.payment_status == "paid"
        assert booking.total_amount == Decimal("1800")
        assert booking.suppress_notifications is True
        assert notifier.sent == []

    def test_reserved_paid_is_promoted(self, manager):
        booking = manager.create_manual_booking(ManualBookingCreate(
            check_in_date=date(2024, 2, 1),
            check_out_date=date(2024, 2, 2),
            room_type="standard",
            guest_name="Walk-in",
            status="reserved",
            payment_status="paid",
        ), now=NOW)
        assert booking.status == "active"


class TestConfirmPayment:

    def test_confirm_promotes_and_notifies_once(self, manager, notifier):
        booking = manager.create_booking(_request(), now=NOW)
        notifier.sent.clear()

        manager.confirm_payment(booking.booking_id)
        confirmed = manager.confirm_payment(booking.booking_id)

        assert confirmed.status == "active"
        assert confirmed.payment_status == "paid"
        assert notifier.subjects() == [f"Payment received - {booking.booking_id}"]

    def test_confirm_unknown_booking(self, manager):
        with pytest.raises(NotFoundError):
            manager.confirm_payment("BK00000000")

    def test_confirm_cancelled_rejected(self, manager):
        booking = manager.create_booking(_request(), now=NOW)
        manager.cancel_booking(booking.booking_id)
        with pytest.raises(ConflictError):
            manager.confirm_payment(booking.booking_id)


class TestCancelAndDelete:

    def test_cancel_sets_operator_reason(self, manager):
        booking = manager.create_booking(_request(), now=NOW)
        cancelled = manager.cancel_booking(booking.booking_id)
        assert cancelled.status == "cancelled"
        assert cancelled.cancellation_reason == CancellationReason.OPERATOR.value

    def test_cancel_twice_conflicts(self, manager):
        booking = manager.create_booking(_request(), now=NOW)
        manager.cancel_booking(booking.booking_id)
        with pytest.raises(ConflictError):
            manager.cancel_booking(booking.booking_id)

    def test_cancel_frees_dates(self, manager, db):
        booking = manager.create_booking(_request(), now=NOW)
        manager.cancel_booking(booking.booking_id)
        manager.create_booking(_request(guest_email="bob@example.com"), now=NOW)
        assert db.query(Booking).filter(Booking.status == "reserved").count() == 1

    def test_delete_requires_cancel(self, manager, db):
        booking = manager.create_booking(_request(), now=NOW)
        manager.confirm_payment(booking.booking_id)
        booking_id = booking.booking_id

        with pytest.raises(ConflictError) as exc_info:
            manager.delete_booking(booking_id)
        assert exc_info.value.code == "BOOKING_NOT_CANCELLED"

        manager.cancel_booking(booking_id)
        manager.delete_booking(booking_id)
        assert db.query(Booking).filter(Booking.booking_id == booking_id).first() is None


class TestEditBooking:

    def test_marking_paid_promotes_and_notifies(self, manager, notifier):
        booking = manager.create_booking(_request(), now=NOW)
        notifier.sent.clear()

        edited = manager.edit_booking(booking.booking_id, {"payment_status": "paid"})

        assert edited.status == "active"
        assert edited.payment_status == "paid"
        assert notifier.subjects() == [f"Payment received - {booking.booking_id}"]

    def test_guest_fields_only(self, manager):
        booking = manager.create_booking(_request(), now=NOW)
        edited = manager.edit_booking(booking.booking_id, {"guest_name": "Ada Lovelace", "adults": 2})
        assert edited.guest_name == "Ada Lovelace"
        assert edited.adults == 2
        assert edited.status == "reserved"

    def test_date_change_reprices(self, manager):
        booking = manager.create_booking(_request(), now=NOW)
        # Fri 2024-02-02 .. Sun 2024-02-04: Fri regular, Sat weekend
        edited = manager.edit_booking(
            booking.booking_id,
            {"check_in_date": date(2024, 2, 2), "check_out_date": date(2024, 2, 4)},
        )
        assert edited.nights == 2
        assert edited.total_amount == Decimal("4500")

    def test_date_change_into_taken_window_rejected(self, manager):
        manager.create_booking(_request(), now=NOW)
        second = manager.create_booking(
            _request(check_in_date=date(2024, 2, 3), check_out_date=date(2024, 2, 5)), now=NOW
        )
        with pytest.raises(ConflictError):
            manager.edit_booking(second.booking_id, {"check_in_date": date(2024, 2, 2)})

    def test_cancel_via_edit_is_terminal(self, manager):
        booking = manager.create_booking(_request(), now=NOW)
        manager.edit_booking(booking.booking_id, {"status": "cancelled"})
        with pytest.raises(ConflictError):
            manager.edit_booking(booking.booking_id, {"status": "active"})


class TestBookingSchemas:

    def test_invalid_guest_email_rejected(self):
        with pytest.raises(PydanticValidationError):
            _request(guest_email="not-an-email")

    def test_email_required_for_public_booking(self):
        with pytest.raises(PydanticValidationError):
            _request(guest_email=None)

    def test_manual_booking_email_optional(self):
        request = ManualBookingCreate(
            check_in_date=date(2024, 2, 1),
            check_out_date=date(2024, 2, 2),
            room_type="standard",
            guest_name="Walk-in",
        )
        assert request.guest_email is None

    def test_update_validates_email(self):
        with pytest.raises(PydanticValidationError):
            BookingUpdate(guest_email="ada@")
