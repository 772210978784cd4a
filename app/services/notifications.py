"""
Notification collaborators

The booking core talks to two external collaborators:
- TemplateRenderer: render(kind, booking, context) -> RenderedMessage
- Notifier: send(destination, subject, body) -> bool

Concrete email transport lives outside this service. LoggingNotifier and
PlainTextRenderer are the in-process defaults used in development and
wired in when nothing else is configured.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Protocol, Tuple

from jinja2 import Environment, StrictUndefined, Template

from ..models.booking import Booking, NotificationKind, PaymentMethod

logger = logging.getLogger(__name__)


@dataclass
class RenderedMessage:
    subject: str
    body: str


class TemplateRenderer(Protocol):
    def render(self, kind: NotificationKind, booking: Booking, context: Dict[str, Any]) -> RenderedMessage:
        ...


class Notifier(Protocol):
    def send(self, destination: str, subject: str, body: str) -> bool:
        ...


class LoggingNotifier:
    """Notifier that only records the message in the log"""

    def send(self, destination: str, subject: str, body: str) -> bool:
        logger.info(f"[notify] to={destination} subject={subject!r} ({len(body)} chars)")
        return True


DEFAULT_TEMPLATES: Dict[NotificationKind, Tuple[str, str]] = {
    NotificationKind.BOOKING_CONFIRMATION: (
        "Booking received - {{ booking_id }}",
        """Dear {{ guest_name }},

We have received your booking {{ booking_id }} for {{ room_type }}, {{ check_in_date }} to {{ check_out_date }} ({{ nights }} nights).
Total: {{ total_amount | amount }}
{% if addons_list %}
Add-ons: {{ addons_list }} ({{ addons_total | amount }})
{% endif %}
{% if is_deposit %}
Deposit due: {{ final_amount | amount }}, balance on arrival: {{ remaining_amount | amount }}
{% else %}
Amount due: {{ final_amount | amount }}
{% endif %}
{% if is_transfer %}
Please complete the transfer by {{ payment_deadline }}.
{% endif %}
""",
    ),
    NotificationKind.PAYMENT_REMINDER: (
        "Payment reminder - {{ booking_id }}",
        """Dear {{ guest_name }},

Payment for booking {{ booking_id }} ({{ check_in_date }} to {{ check_out_date }}) is due by {{ payment_deadline }}.
{% if is_deposit %}
Deposit due: {{ final_amount | amount }}
{% else %}
Amount due: {{ final_amount | amount }}
{% endif %}
Unpaid reservations are released after the deadline.
""",
    ),
    NotificationKind.PAYMENT_RECEIVED: (
        "Payment received - {{ booking_id }}",
        """Dear {{ guest_name }},

We have received your payment for booking {{ booking_id }}. Your stay from {{ check_in_date }} to {{ check_out_date }} is confirmed.
{% if is_deposit %}
Balance on arrival: {{ remaining_amount | amount }}
{% endif %}
""",
    ),
    NotificationKind.CHECKIN_REMINDER: (
        "See you soon - {{ booking_id }}",
        """Dear {{ guest_name }},

This is a reminder that your stay in {{ room_type }} starts on {{ check_in_date }}.
{% if addons_list %}
Your add-ons: {{ addons_list }}
{% endif %}
""",
    ),
    NotificationKind.FEEDBACK_REQUEST: (
        "How was your stay? - {{ booking_id }}",
        """Dear {{ guest_name }},

Thank you for staying with us from {{ check_in_date }} to {{ check_out_date }}. We would love to hear your feedback.
""",
    ),
    NotificationKind.CANCEL_NOTIFICATION: (
        "Booking cancelled - {{ booking_id }}",
        """Dear {{ guest_name }},

Booking {{ booking_id }} ({{ check_in_date }} to {{ check_out_date }}) was cancelled because payment was not received by {{ payment_deadline }}.
You are welcome to book again.
""",
    ),
}


def format_amount(value) -> str:
    """Whole currency units with thousands separators"""
    amount = Decimal(str(value or 0))
    return f"{amount:,.0f}"


def create_environment() -> Environment:
    # Plain-text bodies: no HTML escaping, block tags consume their own line
    env = Environment(
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )
    env.filters["amount"] = format_amount
    return env


class PlainTextRenderer:
    """
    Jinja2 renderer for guest notifications.

    Templates see the booking fields in snake_case plus the flags
    is_deposit, is_transfer and addons_list for the conditional sections.
    """

    def __init__(self, templates: Optional[Dict[NotificationKind, Tuple[str, str]]] = None):
        self.env = create_environment()
        self._compiled: Dict[NotificationKind, Tuple[Template, Template]] = {
            NotificationKind(kind): (self.env.from_string(subject), self.env.from_string(body))
            for kind, (subject, body) in (templates or DEFAULT_TEMPLATES).items()
        }

    def build_context(self, booking: Booking, context: Dict[str, Any]) -> Dict[str, Any]:
        addons_list = ", ".join(
            f"{item.get('name')} x{item.get('quantity', 1)}" for item in booking.addon_items
        )
        total = Decimal(str(booking.total_amount or 0))
        due = Decimal(str(booking.final_amount or 0))
        return {
            "booking_id": booking.booking_id,
            "guest_name": booking.guest_name or "",
            "guest_email": booking.guest_email or "",
            "guest_phone": booking.guest_phone or "",
            "room_type": context.get("room_type_display") or booking.room_type or "",
            "check_in_date": booking.check_in_date.isoformat() if booking.check_in_date else "",
            "check_out_date": booking.check_out_date.isoformat() if booking.check_out_date else "",
            "nights": booking.nights or 0,
            "total_amount": total,
            "final_amount": due,
            "remaining_amount": total - due,
            "addons_list": addons_list,
            "addons_total": booking.addons_total or 0,
            "payment_deadline": str(context.get("payment_deadline", "")),
            "days_reserved": context.get("hold_days", ""),
            "is_deposit": booking.is_deposit,
            "is_transfer": booking.payment_method == PaymentMethod.BANK_TRANSFER.value,
        }

    def render(self, kind: NotificationKind, booking: Booking, context: Dict[str, Any]) -> RenderedMessage:
        try:
            subject_template, body_template = self._compiled[NotificationKind(kind)]
        except KeyError:
            raise ValueError(f"No template for notification kind {kind}")

        variables = self.build_context(booking, context)
        return RenderedMessage(
            subject=subject_template.render(variables).strip(),
            body=body_template.render(variables),
        )
