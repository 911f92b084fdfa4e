"""Domain event model and event type catalog."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now


class EventType(str, Enum):
    """Event types business services emit, grouped by domain.

    Webhooks subscribe by value (e.g. ``"entry.recorded"``). Registration
    does not restrict subscriptions to this catalog.
    """

    # Student events
    STUDENT_CREATED = "student.created"
    STUDENT_UPDATED = "student.updated"
    STUDENT_DELETED = "student.deleted"
    STUDENT_STATUS_CHANGED = "student.status_changed"

    # Pass events
    PASS_CREATED = "pass.created"
    PASS_UPDATED = "pass.updated"
    PASS_ACTIVATED = "pass.activated"
    PASS_DEACTIVATED = "pass.deactivated"
    PASS_EXPIRED = "pass.expired"

    # Entry/exit events
    ENTRY_RECORDED = "entry.recorded"
    EXIT_RECORDED = "exit.recorded"
    ENTRY_DENIED = "entry.denied"

    # Security events
    SECURITY_ALERT_CREATED = "security.alert_created"
    ANOMALY_DETECTED = "security.anomaly_detected"
    BREACH_DETECTED = "security.breach_detected"

    # Device events
    DEVICE_ONLINE = "device.online"
    DEVICE_OFFLINE = "device.offline"
    DEVICE_ERROR = "device.error"
    DEVICE_MAINTENANCE = "device.maintenance"

    # System events
    SYSTEM_MAINTENANCE = "system.maintenance"
    BACKUP_COMPLETED = "system.backup_completed"
    UPDATE_AVAILABLE = "system.update_available"

    # Synthetic event sent by manual webhook tests
    WEBHOOK_TEST = "webhook.test"


ALL_EVENT_TYPES: list[str] = [event_type.value for event_type in EventType]


def event_types_by_domain() -> dict[str, list[str]]:
    """Group the catalog by domain prefix (``student``, ``pass``, ...)."""
    grouped: dict[str, list[str]] = {}
    for value in ALL_EVENT_TYPES:
        grouped.setdefault(value.split(".", 1)[0], []).append(value)
    return grouped


class Event(BaseModel):
    """Immutable fact describing something that happened.

    Attributes:
        id: Unique event identifier.
        type: Event type (e.g. ``entry.recorded``).
        data: Event payload.
        metadata: Caller metadata plus ``timestamp``, ``source`` and
            ``schema_version``.
        created_at: When the event was created.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("evt"))
    type: str = Field(min_length=1, description="Event type")
    data: Any = Field(default_factory=dict, description="Event payload")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Event metadata")
    created_at: datetime = Field(default_factory=utc_now)


__all__ = [
    "ALL_EVENT_TYPES",
    "Event",
    "EventType",
    "event_types_by_domain",
]
