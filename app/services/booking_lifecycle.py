"""
Booking Lifecycle Manager

Owns every mutation of a booking's (status, payment_status) pair.

State machine:
    reserved/pending  initial for online bookings
    reserved/paid     transient, promoted to active whenever it is observed
    active/pending    operator bookings, bank-transfer edge cases
    active/paid       steady state for confirmed stays
    cancelled/*       terminal

All paths (create, edit, payment confirmation, cancel, expiry) go through
apply_transition() so the reserved->active promotion on payment lives in
exactly one place.
"""

import enum
import json
import time
from datetime import datetime, date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional, Tuple, Union

from sqlalchemy.orm import Session

from ..config import settings
from ..models.booking import (
    Booking, BookingStatus, CancellationReason, PaymentStatus, PaymentMethod,
    PaymentAmountType, NotificationKind, OCCUPYING_STATUSES
)
from ..models.room_type import RoomType
from ..schemas.booking import BookingCreate, ManualBookingCreate, BookingUpdate
from ..utils.db_helpers import acquire_row_lock, commit_or_raise
from ..utils.exceptions import ConflictError, NotFoundError, ValidationError
from ..utils.logging_config import get_logger
from .availability_service import AvailabilityChecker
from .notification_dispatcher import NotificationDispatcher, build_notification_context
from .notification_policies import local_today
from .notifications import LoggingNotifier, Notifier, PlainTextRenderer, TemplateRenderer
from .pricing_engine import PricingEngine

logger = get_logger(__name__)


class TransitionEvent(str, enum.Enum):
    CREATE = "create"
    CONFIRM_PAYMENT = "confirm_payment"
    CANCEL = "cancel"
    EXPIRE = "expire"
    EDIT = "edit"


def _coerce_status(value) -> BookingStatus:
    try:
        return BookingStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown booking status: {value}", details={"status": str(value)})


def _coerce_payment_status(value) -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError:
        raise ValidationError(
            f"Unknown payment status: {value}", details={"payment_status": str(value)}
        )


def _promote(status: BookingStatus, payment_status: PaymentStatus) -> BookingStatus:
    if status == BookingStatus.RESERVED and payment_status == PaymentStatus.PAID:
        return BookingStatus.ACTIVE
    return status


def apply_transition(
    status,
    payment_status,
    event: TransitionEvent,
    new_status=None,
    new_payment_status=None,
) -> Tuple[BookingStatus, PaymentStatus]:
    """
    Compute the next (status, payment_status) for an event.

    For CREATE, status/payment_status are the requested initial state.
    Raises ConflictError for transitions out of the terminal cancelled state
    or otherwise illegal for the current state.
    """
    status = _coerce_status(status)
    payment_status = _coerce_payment_status(payment_status)
    event = TransitionEvent(event)

    if event == TransitionEvent.CREATE:
        if status == BookingStatus.CANCELLED:
            raise ValidationError("A new booking cannot start cancelled")
        return _promote(status, payment_status), payment_status

    if status == BookingStatus.CANCELLED:
        if event == TransitionEvent.EDIT:
            target = _coerce_status(new_status) if new_status is not None else status
            if target != BookingStatus.CANCELLED:
                raise ConflictError(
                    "Cancelled bookings cannot be reopened",
                    code="BOOKING_CANCELLED",
                    details={"requested_status": target.value},
                )
            target_payment = (
                _coerce_payment_status(new_payment_status)
                if new_payment_status is not None else payment_status
            )
            return status, target_payment
        raise ConflictError(
            f"Booking is cancelled, {event.value} is not allowed",
            code="BOOKING_CANCELLED",
        )

    if event == TransitionEvent.CONFIRM_PAYMENT:
        return _promote(status, PaymentStatus.PAID), PaymentStatus.PAID

    elif event == TransitionEvent.CANCEL:
        return BookingStatus.CANCELLED, payment_status

    elif event == TransitionEvent.EXPIRE:
        if status != BookingStatus.RESERVED or payment_status != PaymentStatus.PENDING:
            raise ConflictError(
                "Only unpaid reservations can expire",
                code="NOT_EXPIRABLE",
                details={"status": status.value, "payment_status": payment_status.value},
            )
        return BookingStatus.CANCELLED, payment_status

    elif event == TransitionEvent.EDIT:
        target = _coerce_status(new_status) if new_status is not None else status
        target_payment = (
            _coerce_payment_status(new_payment_status)
            if new_payment_status is not None else payment_status
        )
        return _promote(target, target_payment), target_payment

    raise ValueError(f"Unhandled transition event: {event}")


def compute_due_amount(total: Decimal, amount_type: PaymentAmountType, deposit_percentage: int) -> Decimal:
    """Amount payable now: the deposit fraction rounded to whole units, or the total"""
    if amount_type == PaymentAmountType.DEPOSIT:
        return (total * Decimal(deposit_percentage) / Decimal(100)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    return total


class BookingLifecycleManager:
    """Booking operations exposed to the API layer"""

    ID_ATTEMPTS = 10

    def __init__(
        self,
        db: Session,
        notifier: Optional[Notifier] = None,
        renderer: Optional[TemplateRenderer] = None,
        pricing: Optional[PricingEngine] = None,
        availability: Optional[AvailabilityChecker] = None,
    ):
        self.db = db
        self.pricing = pricing or PricingEngine(db)
        self.availability = availability or AvailabilityChecker(db)
        self.dispatcher = NotificationDispatcher(
            db, notifier or LoggingNotifier(), renderer or PlainTextRenderer()
        )

    # ==================
    # Identity
    # ==================

    def generate_booking_id(self) -> str:
        """BK + last 8 digits of the epoch-millisecond clock"""
        base = int(time.time() * 1000)
        for attempt in range(self.ID_ATTEMPTS):
            candidate = f"BK{(base + attempt) % 100_000_000:08d}"
            exists = self.db.query(Booking.booking_id).filter(
                Booking.booking_id == candidate
            ).first()
            if exists is None:
                return candidate
        raise ConflictError("Could not allocate a booking id, retry the request", code="ID_EXHAUSTED")

    # ==================
    # Reads
    # ==================

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.db.query(Booking).filter(Booking.booking_id == booking_id).first()
        if booking is None:
            raise NotFoundError(f"Booking not found: {booking_id}", details={"booking_id": booking_id})
        return booking

    def _lock_booking(self, booking_id: str) -> Booking:
        booking = acquire_row_lock(self.db, Booking, Booking.booking_id == booking_id)
        if booking is None:
            raise NotFoundError(f"Booking not found: {booking_id}", details={"booking_id": booking_id})
        return booking

    # ==================
    # Validation helpers
    # ==================

    def _validate_window(self, check_in: date, check_out: date, today: Optional[date] = None) -> None:
        if check_out <= check_in:
            raise ValidationError(
                "Check-out date must be after check-in date",
                details={"check_in": check_in.isoformat(), "check_out": check_out.isoformat()},
            )
        nights = (check_out - check_in).days
        if nights > settings.booking_max_nights:
            raise ValidationError(
                f"Stay cannot exceed {settings.booking_max_nights} nights", details={"nights": nights}
            )
        if today is not None:
            if check_in < today:
                raise ValidationError(
                    "Check-in date cannot be in the past", details={"check_in": check_in.isoformat()}
                )
            if check_in > today + timedelta(days=settings.booking_max_advance_days):
                raise ValidationError(
                    f"Bookings open {settings.booking_max_advance_days} days in advance",
                    details={"check_in": check_in.isoformat()},
                )

    def _check_payment_method_enabled(self, method: PaymentMethod) -> None:
        if method == PaymentMethod.BANK_TRANSFER and not settings.enable_bank_transfer:
            raise ValidationError("Bank transfer is currently disabled", code="PAYMENT_METHOD_DISABLED")
        if method == PaymentMethod.CARD and not settings.enable_card_payment:
            raise ValidationError("Card payment is currently disabled", code="PAYMENT_METHOD_DISABLED")

    def _resolve_room_type(self, name: str) -> RoomType:
        try:
            return self.pricing.get_room_type(name)
        except NotFoundError:
            raise ValidationError(f"Unknown room type: {name}", details={"room_type": name})

    def _lock_and_check(
        self,
        check_in: date,
        check_out: date,
        room_type: RoomType,
        exclude_booking_id: Optional[str] = None
    ) -> None:
        """Serialize writers per category, then re-check capacity under the lock"""
        acquire_row_lock(self.db, RoomType, RoomType.id == room_type.id)
        if not self.availability.is_available(check_in, check_out, room_type, exclude_booking_id):
            self.db.rollback()
            raise ConflictError(
                "Room type is not available for the selected dates",
                code="ROOM_UNAVAILABLE",
                details={
                    "room_type": room_type.name,
                    "check_in": check_in.isoformat(),
                    "check_out": check_out.isoformat(),
                },
            )

    # ==================
    # Notifications
    # ==================

    def _notify(self, booking: Booking, kind: NotificationKind, now: Optional[datetime] = None) -> None:
        """Best effort; state is already committed"""
        try:
            self.dispatcher.dispatch(booking, kind, build_notification_context(self.db, booking), now=now)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Notification {kind.value} for booking {booking.booking_id} failed: {e}")

    # ==================
    # Mutations
    # ==================

    def create_booking(self, request: BookingCreate, now: Optional[datetime] = None) -> Booking:
        """
        Create a public booking in reserved/pending.

        Raises:
            ValidationError: Bad window, unknown category, disabled method
            ConflictError: No free unit for the window
            IntegrationError: Storage failure (nothing persisted)
        """
        now = now or datetime.utcnow()
        method = PaymentMethod(request.payment_method)
        if method == PaymentMethod.OTHER:
            raise ValidationError("Payment method must be bank_transfer or card")

        self._validate_window(request.check_in_date, request.check_out_date, local_today(now))
        self._check_payment_method_enabled(method)
        room_type = self._resolve_room_type(request.room_type)

        self._lock_and_check(request.check_in_date, request.check_out_date, room_type)

        quote = self.pricing.price_stay(request.check_in_date, request.check_out_date, room_type)
        addons = [addon.model_dump(mode="json") for addon in request.addons]
        addons_total = sum((addon.line_total for addon in request.addons), Decimal("0"))
        total = quote.total + addons_total

        amount_type = PaymentAmountType(request.payment_amount_type)
        deposit_percentage = settings.deposit_percentage
        due = compute_due_amount(total, amount_type, deposit_percentage)

        status, payment_status = apply_transition(
            BookingStatus.RESERVED, PaymentStatus.PENDING, TransitionEvent.CREATE
        )

        booking = Booking(
            booking_id=self.generate_booking_id(),
            check_in_date=request.check_in_date,
            check_out_date=request.check_out_date,
            room_type=room_type.name,
            guest_name=request.guest_name,
            guest_phone=request.guest_phone,
            guest_email=request.guest_email,
            adults=request.adults,
            children=request.children,
            nights=quote.night_count,
            price_per_night=quote.average_nightly_price,
            total_amount=total,
            final_amount=due,
            payment_amount_type=amount_type.value,
            deposit_percentage=deposit_percentage if amount_type == PaymentAmountType.DEPOSIT else None,
            addons=json.dumps(addons) if addons else None,
            addons_total=addons_total,
            payment_method=method.value,
            status=status.value,
            payment_status=payment_status.value,
            suppress_notifications=False,
            created_at=now,
        )
        self.db.add(booking)
        commit_or_raise(self.db, "create_booking")
        self.db.refresh(booking)

        logger.booking_created(
            booking.booking_id, room_type.name,
            booking.check_in_date.isoformat(), booking.check_out_date.isoformat(),
            method.value, str(total),
        )

        # Card bookings are confirmed once the gateway reports payment
        if method == PaymentMethod.BANK_TRANSFER:
            self._notify(booking, NotificationKind.BOOKING_CONFIRMATION, now)

        return booking

    def create_manual_booking(self, request: ManualBookingCreate, now: Optional[datetime] = None) -> Booking:
        """Operator entry: explicit state, no guest notifications, availability still enforced"""
        now = now or datetime.utcnow()
        self._validate_window(request.check_in_date, request.check_out_date)
        room_type = self._resolve_room_type(request.room_type)

        status, payment_status = apply_transition(
            request.status, request.payment_status, TransitionEvent.CREATE
        )

        self._lock_and_check(request.check_in_date, request.check_out_date, room_type)

        quote = self.pricing.price_stay(request.check_in_date, request.check_out_date, room_type)
        addons = [addon.model_dump(mode="json") for addon in request.addons]
        addons_total = sum((addon.line_total for addon in request.addons), Decimal("0"))
        total = request.total_amount if request.total_amount is not None else quote.total + addons_total

        booking = Booking(
            booking_id=self.generate_booking_id(),
            check_in_date=request.check_in_date,
            check_out_date=request.check_out_date,
            room_type=room_type.name,
            guest_name=request.guest_name,
            guest_phone=request.guest_phone,
            guest_email=request.guest_email,
            adults=request.adults,
            children=request.children,
            nights=quote.night_count,
            price_per_night=(total / quote.night_count).quantize(Decimal("1"), rounding=ROUND_HALF_UP),
            total_amount=total,
            final_amount=total,
            payment_amount_type=PaymentAmountType.FULL.value,
            addons=json.dumps(addons) if addons else None,
            addons_total=addons_total,
            payment_method=PaymentMethod(request.payment_method).value,
            status=status.value,
            payment_status=payment_status.value,
            suppress_notifications=True,
            created_at=now,
        )
        self.db.add(booking)
        commit_or_raise(self.db, "create_manual_booking")
        self.db.refresh(booking)

        logger.info(
            f"Manual booking {booking.booking_id} created for {room_type.name} "
            f"{booking.check_in_date} -> {booking.check_out_date} ({status.value}/{payment_status.value})"
        )
        return booking

    def confirm_payment(self, booking_id: str, now: Optional[datetime] = None) -> Booking:
        """
        Mark paid; a reserved booking becomes active.

        Idempotent: confirming an active/paid booking changes nothing and
        sends nothing.
        """
        booking = self._lock_booking(booking_id)
        old_status, old_payment = booking.status, booking.payment_status

        status, payment_status = apply_transition(
            old_status, old_payment, TransitionEvent.CONFIRM_PAYMENT
        )
        if status.value == old_status and payment_status.value == old_payment:
            self.db.rollback()
            logger.info(f"Payment for booking {booking_id} already confirmed, no-op")
            return booking

        booking.status = status.value
        booking.payment_status = payment_status.value
        commit_or_raise(self.db, "confirm_payment")

        logger.booking_status_changed(
            booking_id, f"{old_status}/{old_payment}", f"{status.value}/{payment_status.value}",
            reason="payment_confirmed",
        )

        if old_payment == PaymentStatus.PENDING.value:
            self._notify(booking, NotificationKind.PAYMENT_RECEIVED, now)
        return booking

    def cancel_booking(
        self, booking_id: str, reason: CancellationReason = CancellationReason.OPERATOR
    ) -> Booking:
        """reserved|active -> cancelled. Cancelling twice is a ConflictError."""
        booking = self._lock_booking(booking_id)
        old_status = booking.status

        status, _ = apply_transition(booking.status, booking.payment_status, TransitionEvent.CANCEL)
        booking.status = status.value
        booking.cancellation_reason = CancellationReason(reason).value
        commit_or_raise(self.db, "cancel_booking")

        logger.booking_status_changed(booking_id, old_status, status.value, reason="cancelled")
        return booking

    def edit_booking(
        self,
        booking_id: str,
        fields: Union[BookingUpdate, Dict[str, Any]],
        now: Optional[datetime] = None
    ) -> Booking:
        """
        Operator edit.

        Date or category changes on an occupying booking re-check
        availability (excluding this booking) and reprice unless amounts
        are supplied. Setting payment_status=paid on a reserved booking
        promotes it to active.
        """
        if isinstance(fields, dict):
            fields = BookingUpdate(**fields)
        changes = {k: v for k, v in fields.model_dump(exclude_unset=True).items() if v is not None}
        booking = self._lock_booking(booking_id)
        old_status, old_payment = booking.status, booking.payment_status

        status, payment_status = apply_transition(
            old_status, old_payment, TransitionEvent.EDIT,
            new_status=changes.pop("status", None),
            new_payment_status=changes.pop("payment_status", None),
        )

        check_in = changes.get("check_in_date") or booking.check_in_date
        check_out = changes.get("check_out_date") or booking.check_out_date
        room_type_name = changes.get("room_type") or booking.room_type
        window_changed = (
            check_in != booking.check_in_date
            or check_out != booking.check_out_date
            or room_type_name != booking.room_type
        )
        if window_changed:
            self._validate_window(check_in, check_out)
            room_type = self._resolve_room_type(room_type_name)
            if status.value in OCCUPYING_STATUSES:
                self._lock_and_check(check_in, check_out, room_type, exclude_booking_id=booking_id)

            quote = self.pricing.price_stay(check_in, check_out, room_type)
            booking.nights = quote.night_count
            booking.price_per_night = quote.average_nightly_price
            if "total_amount" not in changes:
                total = quote.total + Decimal(str(booking.addons_total or 0))
                booking.total_amount = total
                if "final_amount" not in changes:
                    booking.final_amount = compute_due_amount(
                        total,
                        PaymentAmountType(booking.payment_amount_type or PaymentAmountType.FULL.value),
                        booking.deposit_percentage or settings.deposit_percentage,
                    )
            changes["room_type"] = room_type.name

        for field_name, value in changes.items():
            if isinstance(value, enum.Enum):
                value = value.value
            setattr(booking, field_name, value)

        if status == BookingStatus.CANCELLED and old_status != BookingStatus.CANCELLED.value:
            booking.cancellation_reason = CancellationReason.OPERATOR.value
        booking.status = status.value
        booking.payment_status = payment_status.value
        commit_or_raise(self.db, "edit_booking")

        if status.value != old_status or payment_status.value != old_payment:
            logger.booking_status_changed(
                booking_id, f"{old_status}/{old_payment}", f"{status.value}/{payment_status.value}",
                reason="operator_edit",
            )
        else:
            logger.info(f"Booking {booking_id} edited: {sorted(changes.keys())}")

        if (
            old_payment == PaymentStatus.PENDING.value
            and payment_status == PaymentStatus.PAID
            and booking.payment_method == PaymentMethod.BANK_TRANSFER.value
        ):
            self._notify(booking, NotificationKind.PAYMENT_RECEIVED, now)

        return booking

    def delete_booking(self, booking_id: str) -> None:
        """Physical delete, allowed only for cancelled bookings"""
        booking = self._lock_booking(booking_id)
        if booking.status != BookingStatus.CANCELLED.value:
            self.db.rollback()
            raise ConflictError(
                "Only cancelled bookings can be deleted",
                code="BOOKING_NOT_CANCELLED",
                details={"booking_id": booking_id, "status": booking.status},
            )

        # Ledger rows go with it via the relationship cascade
        self.db.delete(booking)
        commit_or_raise(self.db, "delete_booking")
        logger.info(f"Booking {booking_id} deleted")
