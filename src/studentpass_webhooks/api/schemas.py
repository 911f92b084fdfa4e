"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from studentpass_webhooks.models import (
    Delivery,
    DeliveryErrorInfo,
    DeliveryStatus,
    Event,
    RetryPolicy,
    Webhook,
    WebhookStats,
    WebhookStatus,
)


class WebhookCreateRequest(BaseModel):
    """Request body for registering a webhook.

    Attributes:
        id: Webhook identifier; registering an existing id replaces it.
        url: Endpoint that receives deliveries.
        events: Event types to deliver.
        secret: Shared secret for HMAC signatures.
        headers: Extra request headers.
        filters: Field filters an event must pass.
        transformations: Output field mappings applied to event data.
        retry_policy: Retry policy overrides.
        metadata: Free-form metadata.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1, description="Webhook identifier")
    url: str = Field(min_length=1, description="Delivery endpoint URL")
    events: list[str] = Field(min_length=1, description="Subscribed event types")
    secret: str | None = Field(default=None, description="HMAC signing secret")
    headers: dict[str, str] = Field(default_factory=dict)
    filters: dict[str, Any] = Field(default_factory=dict)
    transformations: dict[str, Any] = Field(default_factory=dict)
    retry_policy: dict[str, Any] | None = Field(
        default=None, description="Retry policy fields overriding the defaults"
    )
    metadata: dict[str, Any] = Field(default_factory=dict)


class WebhookUpdateRequest(BaseModel):
    """Request body for a partial webhook update. Only set fields change."""

    model_config = ConfigDict(extra="forbid")

    url: str | None = None
    events: list[str] | None = Field(default=None, min_length=1)
    secret: str | None = None
    headers: dict[str, str] | None = None
    filters: dict[str, Any] | None = None
    transformations: dict[str, Any] | None = None
    retry_policy: dict[str, Any] | None = None
    status: WebhookStatus | None = None
    metadata: dict[str, Any] | None = None
    reset_stats: bool = Field(default=False, description="Zero the webhook's stats")


class WebhookResponse(BaseModel):
    """A registered webhook. The secret itself is never returned."""

    model_config = ConfigDict(extra="forbid")

    id: str
    url: str
    events: list[str]
    has_secret: bool
    headers: dict[str, str]
    filters: dict[str, Any]
    transformations: dict[str, Any]
    retry_policy: RetryPolicy
    status: WebhookStatus
    metadata: dict[str, Any]
    stats: WebhookStats
    created_at: datetime
    updated_at: datetime | None = None

    @classmethod
    def from_webhook(cls, webhook: Webhook) -> WebhookResponse:
        return cls(
            id=webhook.id,
            url=str(webhook.url),
            events=sorted(webhook.events),
            has_secret=bool(webhook.secret),
            headers=webhook.headers,
            filters=webhook.filters,
            transformations=webhook.transformations,
            retry_policy=webhook.retry_policy,
            status=webhook.status,
            metadata=webhook.metadata,
            stats=webhook.stats,
            created_at=webhook.created_at,
            updated_at=webhook.updated_at,
        )


class WebhookListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    webhooks: list[WebhookResponse]
    count: int


class EmitEventRequest(BaseModel):
    """Request body for emitting an event.

    Attributes:
        type: Event type, e.g. ``entry.recorded``.
        data: Event payload.
        metadata: Extra metadata merged under the system keys.
    """

    model_config = ConfigDict(extra="forbid")

    type: str = Field(min_length=1, description="Event type")
    data: Any = Field(default_factory=dict, description="Event payload")
    metadata: dict[str, Any] = Field(default_factory=dict)


class EventResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    type: str
    data: Any
    metadata: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_event(cls, event: Event) -> EventResponse:
        return cls(
            id=event.id,
            type=event.type,
            data=event.data,
            metadata=event.metadata,
            created_at=event.created_at,
        )


class DeliveryRecordResponse(BaseModel):
    """Summary of one delivery.

    Attributes:
        id: Delivery ID.
        webhook_id: Target webhook.
        event_id: Delivered event.
        event_type: Type of the delivered event.
        status: Current delivery state.
        attempt: Sends made so far.
        response_status: HTTP status of the successful send.
        response_time_ms: Duration of the successful send.
        error: Latest failure, if any.
        is_test: Whether this was a manual test delivery.
    """

    model_config = ConfigDict(extra="forbid")

    id: str
    webhook_id: str
    event_id: str
    event_type: str
    status: DeliveryStatus
    attempt: int
    queued_at: datetime
    delivered_at: datetime | None = None
    retry_at: datetime | None = None
    completed_at: datetime | None = None
    response_status: int | None = None
    response_time_ms: float | None = None
    error: DeliveryErrorInfo | None = None
    is_test: bool = False

    @classmethod
    def from_delivery(cls, delivery: Delivery) -> DeliveryRecordResponse:
        response = delivery.response
        return cls(
            id=delivery.id,
            webhook_id=delivery.webhook_id,
            event_id=delivery.event.id,
            event_type=delivery.event.type,
            status=delivery.status,
            attempt=delivery.attempt,
            queued_at=delivery.queued_at,
            delivered_at=delivery.delivered_at,
            retry_at=delivery.retry_at,
            completed_at=delivery.completed_at,
            response_status=response.status_code if response else None,
            response_time_ms=response.response_time_ms if response else None,
            error=delivery.error,
            is_test=delivery.is_test,
        )


class DeliveryListResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    webhook_id: str
    deliveries: list[DeliveryRecordResponse]
    count: int


class TestDeliveryResponse(BaseModel):
    """Outcome of a manual test delivery."""

    __test__ = False

    model_config = ConfigDict(extra="forbid")

    success: bool
    delivery: DeliveryRecordResponse
    error: DeliveryErrorInfo | None = None


class EventTypesResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    event_types: list[str]
    by_domain: dict[str, list[str]]


class HealthResponse(BaseModel):
    """Response for health check endpoint.

    Attributes:
        status: Service status (healthy, unhealthy).
        version: API version.
        engine_running: Whether the delivery engine is running.
    """

    model_config = ConfigDict(extra="forbid")

    status: Literal["healthy", "unhealthy"]
    version: str
    engine_running: bool
