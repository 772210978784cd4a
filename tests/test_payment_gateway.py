"""
Payment reconciliation tests

Tests cover:
- CheckMacValue signing and verification
- Tampered or unsigned notifications are rejected with no state change
- Duplicate success notifications leave a single confirmation
"""

import pytest
from datetime import date, datetime

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.models import Booking
from app.schemas.booking import BookingCreate
from app.services.booking_lifecycle import BookingLifecycleManager
from app.services.payment_gateway import ACK_OK, PaymentGateway, PaymentReconciliationHandler
from app.utils.exceptions import SecurityError

NOW = datetime(2024, 1, 1, 2, 0)


@pytest.fixture
def gateway():
    return PaymentGateway("2000132", "5294y06JbISpM5x9", "v77hoKGq4kWxNNIS")


@pytest.fixture
def lifecycle(db, notifier):
    return BookingLifecycleManager(db, notifier=notifier)


@pytest.fixture
def handler(db, gateway, lifecycle):
    return PaymentReconciliationHandler(db, gateway=gateway, lifecycle=lifecycle, relaxed_verification=False)


@pytest.fixture
def card_booking(lifecycle):
    return lifecycle.create_booking(BookingCreate(
        check_in_date=date(2024, 2, 1),
        check_out_date=date(2024, 2, 3),
        room_type="standard",
        guest_name="Ada",
        guest_phone="0912345678",
        guest_email="ada@example.com",
        payment_method="card",
    ), now=NOW)


def _notification(booking_id, rtn_code="1", amount="4000", **extra):
    fields = {
        "MerchantID": "2000132",
        "MerchantTradeNo": booking_id,
        "RtnCode": rtn_code,
        "RtnMsg": "Succeeded" if rtn_code == "1" else "Failed",
        "TradeNo": "2401011200001234",
        "TradeAmt": amount,
        "PaymentDate": "2024/01/01 12:00:00",
        "PaymentType": "Credit_CreditCard",
        "SimulatePaid": "0",
    }
    fields.update(extra)
    return fields


def _reload(db, booking_id):
    db.expire_all()
    return db.query(Booking).filter(Booking.booking_id == booking_id).one()


class TestCheckMacValue:

    def test_sign_then_verify(self, gateway):
        signed = gateway.sign(_notification("BK00000001"))
        assert len(signed["CheckMacValue"]) == 64
        assert signed["CheckMacValue"] == signed["CheckMacValue"].upper()
        assert gateway.verify(signed) is True

    def test_field_order_does_not_matter(self, gateway):
        fields = _notification("BK00000001")
        reversed_fields = dict(reversed(list(fields.items())))
        assert gateway.compute_check_mac_value(fields) == gateway.compute_check_mac_value(reversed_fields)

    def test_tampered_amount_fails(self, gateway):
        signed = gateway.sign(_notification("BK00000001"))
        signed["TradeAmt"] = "1"
        assert gateway.verify(signed) is False

    def test_lowercase_checksum_accepted(self, gateway):
        signed = gateway.sign(_notification("BK00000001"))
        signed["CheckMacValue"] = signed["CheckMacValue"].lower()
        assert gateway.verify(signed) is True

    def test_missing_checksum_fails(self, gateway):
        assert gateway.verify(_notification("BK00000001")) is False

    def test_other_key_fails(self, gateway):
        signed = PaymentGateway("2000132", "otherkey00000000", "otheriv000000000").sign(
            _notification("BK00000001")
        )
        assert gateway.verify(signed) is False

    def test_encoding_of_spaces_and_symbols(self, gateway):
        """Spaces and unreserved punctuation must not change between sign and verify"""
        signed = gateway.sign(_notification("BK00000001", RtnMsg="paid (test) - ok!*"))
        assert gateway.verify(signed) is True

    def test_parse(self, gateway):
        callback = gateway.parse(_notification("BK00000001", SimulatePaid="1"))
        assert callback.booking_id == "BK00000001"
        assert callback.amount == 4000
        assert callback.is_success is True
        assert callback.simulated is True


class TestPaymentCallback:

    def test_duplicate_success_confirms_once(self, db, handler, card_booking, notifier):
        signed = handler.gateway.sign(_notification(card_booking.booking_id))

        assert handler.handle_callback(signed) == ACK_OK
        assert handler.handle_callback(signed) == ACK_OK

        booking = _reload(db, card_booking.booking_id)
        assert booking.status == "active"
        assert booking.payment_status == "paid"
        assert notifier.subjects() == [f"Payment received - {card_booking.booking_id}"]

    def test_bad_signature_rejected_without_state_change(self, db, handler, card_booking):
        signed = handler.gateway.sign(_notification(card_booking.booking_id))
        signed["CheckMacValue"] = "0" * 64

        with pytest.raises(SecurityError) as exc_info:
            handler.handle_callback(signed)

        assert exc_info.value.code == "CHECKSUM_MISMATCH"
        assert _reload(db, card_booking.booking_id).payment_status == "pending"

    def test_failed_payment_leaves_booking_pending(self, db, handler, card_booking):
        signed = handler.gateway.sign(_notification(card_booking.booking_id, rtn_code="10100058"))

        assert handler.handle_callback(signed) == ACK_OK
        assert _reload(db, card_booking.booking_id).status == "reserved"

    def test_unknown_booking_is_acknowledged(self, handler):
        signed = handler.gateway.sign(_notification("BK99999999"))
        assert handler.handle_callback(signed) == ACK_OK

    def test_payment_after_cancel_is_not_applied(self, db, handler, lifecycle, card_booking):
        lifecycle.cancel_booking(card_booking.booking_id)
        signed = handler.gateway.sign(_notification(card_booking.booking_id))

        assert handler.handle_callback(signed) == ACK_OK
        booking = _reload(db, card_booking.booking_id)
        assert booking.status == "cancelled"
        assert booking.payment_status == "pending"

    def test_relaxed_mode_accepts_unsigned_success(self, db, gateway, lifecycle, card_booking):
        relaxed = PaymentReconciliationHandler(
            db, gateway=gateway, lifecycle=lifecycle, relaxed_verification=True
        )
        relaxed.handle_callback(_notification(card_booking.booking_id))
        assert _reload(db, card_booking.booking_id).payment_status == "paid"


class TestPaymentRedirect:

    def test_verified_success(self, handler, card_booking):
        outcome = handler.handle_redirect(handler.gateway.sign(_notification(card_booking.booking_id)))
        assert outcome.success is True
        assert outcome.verified is True
        assert outcome.amount == 4000

    def test_unverified_redirect_reports_failure(self, db, handler, card_booking):
        outcome = handler.handle_redirect(_notification(card_booking.booking_id))
        assert outcome.success is False
        assert outcome.verified is False
        assert outcome.booking_id == card_booking.booking_id
        assert _reload(db, card_booking.booking_id).payment_status == "pending"
