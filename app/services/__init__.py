# Services package
from .pricing_engine import PricingEngine, StayQuote, NightPrice, get_pricing_engine
from .availability_service import AvailabilityChecker, ranges_overlap
from .booking_lifecycle import BookingLifecycleManager, TransitionEvent, apply_transition
from .notifications import (
    Notifier, TemplateRenderer, RenderedMessage, LoggingNotifier, PlainTextRenderer
)
from .notification_dispatcher import (
    NotificationDispatcher, NotificationLedger, DispatchOutcome, build_notification_context
)
from .expiration_sweeper import ExpirationSweeper, SweepResult
from .notification_scheduler import NotificationScheduler, DispatchSummary
from .payment_gateway import (
    PaymentGateway, PaymentReconciliationHandler, PaymentCallback, PaymentOutcome
)
from .catalog_service import CatalogService

__all__ = [
    "PricingEngine", "StayQuote", "NightPrice", "get_pricing_engine",
    "AvailabilityChecker", "ranges_overlap",
    "BookingLifecycleManager", "TransitionEvent", "apply_transition",
    "Notifier", "TemplateRenderer", "RenderedMessage", "LoggingNotifier", "PlainTextRenderer",
    "NotificationDispatcher", "NotificationLedger", "DispatchOutcome", "build_notification_context",
    "ExpirationSweeper", "SweepResult",
    "NotificationScheduler", "DispatchSummary",
    "PaymentGateway", "PaymentReconciliationHandler", "PaymentCallback", "PaymentOutcome",
    "CatalogService",
]
