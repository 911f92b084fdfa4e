"""StudentPass Webhooks: event delivery you can rely on.

Delivers domain events from the StudentPass system (entries, passes,
devices, security alerts) to registered HTTP endpoints, with filtering,
payload transformation, HMAC signatures and scheduled retries.

Quick Start:
    from studentpass_webhooks import WebhookEngine

    async with WebhookEngine() as engine:
        # Register an endpoint
        engine.register_webhook({
            "id": "gate-alerts",
            "url": "https://hooks.example.edu/gates",
            "events": ["entry.denied", "security.alert_created"],
            "secret": "s3cr3t",
            "filters": {"data.campus": "north"},
        })

        # Emit an event; delivery happens in the background
        engine.emit("entry.denied", {"student_id": "S-1042", "campus": "north"})

Delivery lifecycle:
    queued -> delivering -> delivered
                         -> failed -> retry-scheduled -> delivering ...
                                   -> failed-permanently
"""

__version__ = "0.1.0"

# Configuration
from .config import WebhookSettings, settings

# Engine
from .engine import TestDeliveryResult, WebhookEngine

# Exceptions
from .exceptions import (
    DeliveryError,
    DeliveryHTTPError,
    DeliveryNetworkError,
    DeliveryTimeoutError,
    InvalidConfigurationError,
    InvalidEventError,
    InvalidTransitionError,
    NotFoundError,
    PayloadError,
    PermanentFailureError,
    WebhookError,
)

# Filters, transformations and signatures
from .filters import FilterSet, compile_filters, matches
from .history import DeliveryHistory

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    logger,
)

# Models
from .models import (
    ALL_EVENT_TYPES,
    Delivery,
    DeliveryStatus,
    Event,
    EventType,
    RetryPolicy,
    SystemStats,
    Webhook,
    WebhookStats,
)
from .notifications import LifecycleNotifier, Notification, NotificationKind
from .registry import WebhookRegistry
from .scheduler import RetryScheduler, compute_delay
from .signing import canonical_json, sign, verify
from .transform import Transformation, compile_transformations, transform

__all__ = [
    # Version
    "__version__",
    # Configuration
    "WebhookSettings",
    "settings",
    # Engine
    "WebhookEngine",
    "TestDeliveryResult",
    "WebhookRegistry",
    "RetryScheduler",
    "compute_delay",
    "DeliveryHistory",
    "LifecycleNotifier",
    "Notification",
    "NotificationKind",
    # Exceptions
    "WebhookError",
    "InvalidConfigurationError",
    "InvalidEventError",
    "InvalidTransitionError",
    "NotFoundError",
    "DeliveryError",
    "DeliveryNetworkError",
    "DeliveryTimeoutError",
    "DeliveryHTTPError",
    "PayloadError",
    "PermanentFailureError",
    # Filters, transformations and signatures
    "FilterSet",
    "compile_filters",
    "matches",
    "Transformation",
    "compile_transformations",
    "transform",
    "canonical_json",
    "sign",
    "verify",
    # Logging
    "configure_logging",
    "get_logger",
    "logger",
    "bind_context",
    "clear_context",
    # Models
    "ALL_EVENT_TYPES",
    "Delivery",
    "DeliveryStatus",
    "Event",
    "EventType",
    "RetryPolicy",
    "SystemStats",
    "Webhook",
    "WebhookStats",
]
