"""Webhook registration models.

A webhook is an external HTTP endpoint subscribed to a set of event types,
with optional signing secret, custom headers, filters, transformations and
retry policy.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from itertools import pairwise
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, PrivateAttr, field_validator

from ..filters import FilterSet, compile_filters
from ..transform import Transformation, compile_transformations
from .base import utc_now

WebhookStatus = Literal["active", "disabled"]

# One day; keeps every computed retry time representable
MAX_RETRY_DELAY = 86400.0


class RetryPolicy(BaseModel):
    """Retry schedule for failed deliveries.

    Delay for retry ``n`` (1-based) is
    ``delays[min(n - 1, len(delays) - 1)] * backoff_multiplier ** (n - 1)``,
    capped at ``max_delay``. Durations are in seconds.

    Attributes:
        max_retries: Retries allowed after the initial send.
        delays: Base delay per retry; the last entry repeats.
        backoff_multiplier: Multiplier applied per retry (1 = fixed schedule).
        max_delay: Upper bound on any computed delay.
    """

    model_config = ConfigDict(extra="forbid")

    max_retries: int = Field(default=3, ge=0, description="Retries after the initial send")
    delays: list[float] = Field(
        default_factory=lambda: [1.0, 5.0, 30.0],
        min_length=1,
        description="Base delay (seconds) per retry",
    )
    backoff_multiplier: float = Field(
        default=1.0, gt=0.0, description="Multiplier applied per retry"
    )
    max_delay: float = Field(
        default=300.0, ge=0.0, le=MAX_RETRY_DELAY, description="Delay cap in seconds"
    )

    @field_validator("delays")
    @classmethod
    def _delays_ordered(cls, value: list[float]) -> list[float]:
        if any(delay < 0 for delay in value):
            raise ValueError("retry delays must be non-negative")
        if any(later < earlier for earlier, later in pairwise(value)):
            raise ValueError("retry delays must be in non-decreasing order")
        return value


class WebhookStats(BaseModel):
    """Delivery counters for one webhook.

    ``average_response_time`` is a running blend, ``(previous + latest) / 2``,
    in milliseconds.
    """

    model_config = ConfigDict(extra="forbid")

    total_events: int = Field(default=0, ge=0, description="Successful sends counted as events")
    successful_deliveries: int = Field(default=0, ge=0)
    failed_deliveries: int = Field(default=0, ge=0)
    last_delivery: datetime | None = Field(default=None, description="Last successful send")
    average_response_time: float = Field(default=0.0, ge=0.0, description="Milliseconds")


class Webhook(BaseModel):
    """A registered delivery target.

    Filters and transformations are validated and compiled when the model is
    built; the compiled forms are available as ``filter_set`` and
    ``transformation``.

    Attributes:
        id: Caller-supplied unique identifier.
        url: Endpoint receiving POSTed events.
        events: Event types this webhook subscribes to.
        secret: Shared secret for HMAC-SHA256 signatures (optional).
        headers: Headers sent with every delivery.
        filters: Field-path conditions an event must satisfy.
        transformations: Output-key to source mapping for the delivered data.
        retry_policy: Retry schedule for failed deliveries.
        status: ``active`` webhooks receive deliveries, ``disabled`` ones don't.
        metadata: Free-form caller data, not interpreted.
        stats: Delivery counters.
        created_at: When the webhook was registered.
        updated_at: When the configuration last changed.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1, description="Caller-supplied unique identifier")
    url: HttpUrl = Field(description="Endpoint receiving events")
    events: set[str] = Field(min_length=1, description="Subscribed event types")
    secret: str | None = Field(default=None, description="Shared secret for signatures")
    headers: dict[str, str] = Field(default_factory=dict, description="Delivery headers")
    filters: dict[str, Any] = Field(default_factory=dict, description="Event filter spec")
    transformations: dict[str, Any] = Field(
        default_factory=dict, description="Payload transformation spec"
    )
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    status: WebhookStatus = Field(default="active")
    metadata: dict[str, Any] = Field(default_factory=dict)
    stats: WebhookStats = Field(default_factory=WebhookStats)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime | None = Field(default=None)

    _filter_set: FilterSet = PrivateAttr(default_factory=FilterSet)
    _transformation: Transformation = PrivateAttr(default_factory=Transformation)

    @field_validator("events", mode="before")
    @classmethod
    def _normalize_events(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        if isinstance(value, list | tuple | set | frozenset):
            return {item.value if isinstance(item, Enum) else item for item in value}
        return value

    @field_validator("events")
    @classmethod
    def _events_not_blank(cls, value: set[str]) -> set[str]:
        if any(not event_type.strip() for event_type in value):
            raise ValueError("event types must be non-empty strings")
        return value

    @field_validator("filters")
    @classmethod
    def _check_filters(cls, value: dict[str, Any]) -> dict[str, Any]:
        compile_filters(value)
        return value

    @field_validator("transformations")
    @classmethod
    def _check_transformations(cls, value: dict[str, Any]) -> dict[str, Any]:
        compile_transformations(value)
        return value

    def model_post_init(self, __context: Any) -> None:
        self._filter_set = compile_filters(self.filters)
        self._transformation = compile_transformations(self.transformations)

    @property
    def filter_set(self) -> FilterSet:
        return self._filter_set

    @property
    def transformation(self) -> Transformation:
        return self._transformation

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def subscribes_to(self, event_type: str) -> bool:
        """Check if this webhook is active and subscribed to the given event type."""
        return self.is_active and event_type in self.events


__all__ = [
    "RetryPolicy",
    "Webhook",
    "WebhookStats",
    "WebhookStatus",
]
