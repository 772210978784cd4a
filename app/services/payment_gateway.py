"""
Payment Reconciliation

Verifies inbound card-gateway notifications and feeds captured payments into
the lifecycle manager.

CheckMacValue scheme (shared HashKey/HashIV):
1. Take every field except CheckMacValue (empty values kept as "")
2. Sort keys A-Z, join as HashKey=..&k1=v1&..&kn=vn&HashIV=..
3. URL-encode the whole string (encodeURIComponent rules), lowercase it
4. Restore the characters the gateway leaves unescaped (%20 -> + etc.)
5. SHA256, uppercase hex

Two entry points:
- handle_callback(): server-to-server notification, answered with "1|OK"
- handle_redirect(): browser redirect after checkout, returns a PaymentOutcome
"""

import hashlib
import hmac
from dataclasses import dataclass
from typing import Dict, Mapping, Optional
from urllib.parse import quote

from sqlalchemy.orm import Session

from ..config import settings
from ..utils.exceptions import ConflictError, NotFoundError, SecurityError
from ..utils.logging_config import get_logger
from .booking_lifecycle import BookingLifecycleManager

logger = get_logger(__name__)

ACK_OK = "1|OK"
RTN_CODE_SUCCESS = "1"

# encodeURIComponent leaves these unescaped
_URI_COMPONENT_SAFE = "-_.!~*'()"

_GATEWAY_REPLACEMENTS = (
    ("%20", "+"),
    ("%2d", "-"),
    ("%5f", "_"),
    ("%2e", "."),
    ("%21", "!"),
    ("%2a", "*"),
    ("%28", "("),
    ("%29", ")"),
)


@dataclass
class PaymentCallback:
    """Parsed gateway notification"""
    booking_id: str
    result_code: str
    result_message: str
    amount: Optional[int]
    transaction_id: str
    timestamp: str
    payment_type: str = ""
    simulated: bool = False

    @property
    def is_success(self) -> bool:
        return self.result_code == RTN_CODE_SUCCESS


@dataclass
class PaymentOutcome:
    """Result shown to the guest after the checkout redirect"""
    success: bool
    verified: bool
    booking_id: Optional[str] = None
    message: str = ""
    amount: Optional[int] = None
    transaction_id: Optional[str] = None


class PaymentGateway:
    """Checksum scheme for one merchant account"""

    def __init__(
        self,
        merchant_id: Optional[str] = None,
        hash_key: Optional[str] = None,
        hash_iv: Optional[str] = None
    ):
        self.merchant_id = merchant_id or settings.payment_merchant_id
        self.hash_key = hash_key if hash_key is not None else settings.payment_hash_key
        self.hash_iv = hash_iv if hash_iv is not None else settings.payment_hash_iv

    def compute_check_mac_value(self, params: Mapping[str, object]) -> str:
        fields = {
            key: "" if value is None else str(value)
            for key, value in params.items()
            if key != "CheckMacValue"
        }
        check_str = f"HashKey={self.hash_key}"
        for key in sorted(fields):
            check_str += f"&{key}={fields[key]}"
        check_str += f"&HashIV={self.hash_iv}"

        encoded = quote(check_str, safe=_URI_COMPONENT_SAFE).lower()
        for escaped, char in _GATEWAY_REPLACEMENTS:
            encoded = encoded.replace(escaped, char)

        return hashlib.sha256(encoded.encode("utf-8")).hexdigest().upper()

    def sign(self, params: Mapping[str, object]) -> Dict[str, str]:
        """Return a copy of params with CheckMacValue attached"""
        signed = {key: "" if value is None else str(value) for key, value in params.items()}
        signed["CheckMacValue"] = self.compute_check_mac_value(signed)
        return signed

    def verify(self, raw: Mapping[str, object]) -> bool:
        """Constant-time comparison against the supplied CheckMacValue"""
        received = raw.get("CheckMacValue")
        if not received:
            logger.warning("Gateway payload without CheckMacValue")
            return False
        expected = self.compute_check_mac_value(raw)
        return hmac.compare_digest(str(received).upper(), expected)

    @staticmethod
    def parse(raw: Mapping[str, object]) -> PaymentCallback:
        def text(key: str) -> str:
            value = raw.get(key)
            return "" if value is None else str(value)

        try:
            amount = int(text("TradeAmt")) if text("TradeAmt") else None
        except ValueError:
            amount = None

        return PaymentCallback(
            booking_id=text("MerchantTradeNo"),
            result_code=text("RtnCode"),
            result_message=text("RtnMsg"),
            amount=amount,
            transaction_id=text("TradeNo"),
            timestamp=text("PaymentDate"),
            payment_type=text("PaymentType"),
            simulated=text("SimulatePaid") == "1",
        )


class PaymentReconciliationHandler:
    """Verify, parse, confirm. Duplicate notifications are absorbed by confirm_payment."""

    def __init__(
        self,
        db: Session,
        gateway: Optional[PaymentGateway] = None,
        lifecycle: Optional[BookingLifecycleManager] = None,
        relaxed_verification: Optional[bool] = None
    ):
        self.db = db
        self.gateway = gateway or PaymentGateway()
        self.lifecycle = lifecycle or BookingLifecycleManager(db)
        relaxed = (
            relaxed_verification if relaxed_verification is not None
            else settings.payment_relaxed_verification
        )
        self.relaxed_verification = relaxed and not settings.is_production

    def _authenticate(self, raw: Mapping[str, object]) -> PaymentCallback:
        callback = self.gateway.parse(raw)
        if self.gateway.verify(raw):
            return callback

        if self.relaxed_verification and callback.is_success:
            logger.warning(
                f"RELAXED MODE: accepting unverified payment notification for {callback.booking_id}"
            )
            return callback

        logger.error(f"Payment notification for {callback.booking_id or '?'} failed verification")
        raise SecurityError(
            "Payment notification failed signature verification",
            code="CHECKSUM_MISMATCH",
            details={"booking_id": callback.booking_id},
        )

    def _apply(self, callback: PaymentCallback) -> bool:
        """Confirm a captured payment. Returns True if the booking is now paid."""
        if not callback.is_success:
            logger.info(
                f"Payment for {callback.booking_id} not captured: "
                f"{callback.result_code} {callback.result_message}"
            )
            return False

        if callback.simulated and settings.is_production:
            logger.warning(f"Ignoring simulated payment for {callback.booking_id} in production")
            return False

        try:
            booking = self.lifecycle.confirm_payment(callback.booking_id)
        except NotFoundError:
            logger.error(f"Payment {callback.transaction_id} references unknown booking {callback.booking_id}")
            return False
        except ConflictError as e:
            # Captured after the hold expired; needs an operator refund or rebooking
            logger.error(
                f"Payment {callback.transaction_id} for booking {callback.booking_id} "
                f"not applied: {e.message}"
            )
            return False

        if callback.amount is not None and booking.final_amount is not None:
            if int(booking.final_amount) != callback.amount:
                logger.warning(
                    f"Amount mismatch for {callback.booking_id}: "
                    f"gateway {callback.amount}, due {booking.final_amount}"
                )
        return True

    def handle_callback(self, raw: Mapping[str, object]) -> str:
        """
        Server-to-server notification.

        Raises:
            SecurityError: Signature mismatch (no state change)
            IntegrationError: Storage failure; the gateway retries
        """
        callback = self._authenticate(raw)
        self._apply(callback)
        return ACK_OK

    def handle_redirect(self, raw: Mapping[str, object]) -> PaymentOutcome:
        """Browser redirect. Never raises on bad signatures; the guest sees a failure page."""
        try:
            callback = self._authenticate(raw)
        except SecurityError:
            return PaymentOutcome(
                success=False,
                verified=False,
                booking_id=self.gateway.parse(raw).booking_id or None,
                message="Payment could not be verified",
            )

        confirmed = self._apply(callback)
        return PaymentOutcome(
            success=confirmed,
            verified=True,
            booking_id=callback.booking_id,
            message="Payment completed" if confirmed else (callback.result_message or "Payment failed"),
            amount=callback.amount,
            transaction_id=callback.transaction_id or None,
        )
