"""Data models for the webhook engine.

Core Types:
    - Webhook: Registered delivery target with its configuration and stats
    - Event: Immutable domain event
    - Delivery: One event sent to one webhook, with its state machine

Supporting Types:
    - RetryPolicy, WebhookStats: Webhook sub-models
    - DeliveryResponse, DeliveryErrorInfo: Outcome of a send
    - SystemStats: Aggregate statistics
    - EventType: Event type catalog
"""

from .base import generate_id, utc_now
from .delivery import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    Delivery,
    DeliveryErrorInfo,
    DeliveryResponse,
    DeliveryStatus,
)
from .event import ALL_EVENT_TYPES, Event, EventType, event_types_by_domain
from .stats import SystemStats
from .webhook import RetryPolicy, Webhook, WebhookStats, WebhookStatus

__all__ = [
    # Helpers
    "generate_id",
    "utc_now",
    # Webhooks
    "RetryPolicy",
    "Webhook",
    "WebhookStats",
    "WebhookStatus",
    # Events
    "ALL_EVENT_TYPES",
    "Event",
    "EventType",
    "event_types_by_domain",
    # Deliveries
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "Delivery",
    "DeliveryErrorInfo",
    "DeliveryResponse",
    "DeliveryStatus",
    # Stats
    "SystemStats",
]
