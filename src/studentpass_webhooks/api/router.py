"""FastAPI router for webhook management endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from studentpass_webhooks import __version__
from studentpass_webhooks.engine import WebhookEngine
from studentpass_webhooks.exceptions import (
    InvalidConfigurationError,
    InvalidEventError,
    NotFoundError,
)
from studentpass_webhooks.models import (
    ALL_EVENT_TYPES,
    SystemStats,
    WebhookStats,
    event_types_by_domain,
)

from .schemas import (
    DeliveryListResponse,
    DeliveryRecordResponse,
    EmitEventRequest,
    EventResponse,
    EventTypesResponse,
    HealthResponse,
    TestDeliveryResponse,
    WebhookCreateRequest,
    WebhookListResponse,
    WebhookResponse,
    WebhookUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Engine instance (set by app lifespan)
_engine: WebhookEngine | None = None


def set_engine(engine: WebhookEngine | None) -> None:
    """Set the global engine instance."""
    global _engine
    _engine = engine


async def get_engine() -> WebhookEngine:
    """Dependency to get the WebhookEngine instance."""
    if _engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook engine not initialized",
        )
    return _engine


EngineDep = Annotated[WebhookEngine, Depends(get_engine)]


def _not_found(webhook_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Webhook not found: {webhook_id}",
    )


def _bad_request(error: InvalidConfigurationError | InvalidEventError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health.

    Healthy once the delivery engine has been initialized.
    """
    if _engine is None:
        return HealthResponse(status="unhealthy", version=__version__, engine_running=False)
    return HealthResponse(
        status="healthy",
        version=__version__,
        engine_running=_engine.is_running,
    )


@router.get("/event-types", response_model=EventTypesResponse, tags=["system"])
async def list_event_types() -> EventTypesResponse:
    """List the catalog of event types webhooks can subscribe to."""
    return EventTypesResponse(event_types=ALL_EVENT_TYPES, by_domain=event_types_by_domain())


@router.get("/webhooks", response_model=WebhookListResponse, tags=["webhooks"])
async def list_webhooks(engine: EngineDep) -> WebhookListResponse:
    """List all registered webhooks, oldest first."""
    webhooks = [WebhookResponse.from_webhook(w) for w in engine.list_webhooks()]
    return WebhookListResponse(webhooks=webhooks, count=len(webhooks))


@router.post(
    "/webhooks",
    response_model=WebhookResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def create_webhook(request: WebhookCreateRequest, engine: EngineDep) -> WebhookResponse:
    """Register a webhook.

    Registering an id that already exists replaces that webhook and resets
    its stats.

    Raises:
        HTTPException: 400 if the configuration is invalid.
    """
    try:
        webhook = engine.register_webhook(request.model_dump(exclude_none=True))
    except InvalidConfigurationError as e:
        logger.warning("Invalid webhook configuration for %s: %s", request.id, e.message)
        raise _bad_request(e) from e
    return WebhookResponse.from_webhook(webhook)


@router.get("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def get_webhook(webhook_id: str, engine: EngineDep) -> WebhookResponse:
    """Get one webhook.

    Raises:
        HTTPException: 404 if the webhook is not registered.
    """
    try:
        return WebhookResponse.from_webhook(engine.get_webhook(webhook_id))
    except NotFoundError as e:
        raise _not_found(webhook_id) from e


@router.patch("/webhooks/{webhook_id}", response_model=WebhookResponse, tags=["webhooks"])
async def update_webhook(
    webhook_id: str,
    request: WebhookUpdateRequest,
    engine: EngineDep,
) -> WebhookResponse:
    """Update a webhook's configuration. Only fields present in the body change.

    Raises:
        HTTPException: 404 if the webhook is not registered.
        HTTPException: 400 if the merged configuration is invalid.
    """
    changes = request.model_dump(exclude_unset=True, exclude={"reset_stats"})
    try:
        webhook = engine.update_webhook(webhook_id, changes, reset_stats=request.reset_stats)
    except NotFoundError as e:
        raise _not_found(webhook_id) from e
    except InvalidConfigurationError as e:
        raise _bad_request(e) from e
    return WebhookResponse.from_webhook(webhook)


@router.delete(
    "/webhooks/{webhook_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["webhooks"],
)
async def delete_webhook(webhook_id: str, engine: EngineDep) -> None:
    """Unregister a webhook and drop its delivery history.

    Raises:
        HTTPException: 404 if the webhook is not registered.
    """
    if not engine.unregister_webhook(webhook_id):
        raise _not_found(webhook_id)


@router.post(
    "/webhooks/{webhook_id}/test",
    response_model=TestDeliveryResponse,
    tags=["webhooks"],
)
async def test_webhook(webhook_id: str, engine: EngineDep) -> TestDeliveryResponse:
    """Send a synthetic ``webhook.test`` event to the webhook once.

    A failed test is reported in the body, not as an HTTP error.

    Raises:
        HTTPException: 404 if the webhook is not registered.
    """
    try:
        result = await engine.test_webhook(webhook_id)
    except NotFoundError as e:
        raise _not_found(webhook_id) from e

    return TestDeliveryResponse(
        success=result.success,
        delivery=DeliveryRecordResponse.from_delivery(result.delivery),
        error=result.delivery.error,
    )


@router.get(
    "/webhooks/{webhook_id}/deliveries",
    response_model=DeliveryListResponse,
    tags=["webhooks"],
)
async def get_delivery_history(
    webhook_id: str,
    engine: EngineDep,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> DeliveryListResponse:
    """Recent finished deliveries for a webhook, newest first.

    Raises:
        HTTPException: 404 if the webhook is not registered.
    """
    try:
        deliveries = engine.get_delivery_history(webhook_id, limit)
    except NotFoundError as e:
        raise _not_found(webhook_id) from e

    records = [DeliveryRecordResponse.from_delivery(d) for d in deliveries]
    return DeliveryListResponse(webhook_id=webhook_id, deliveries=records, count=len(records))


@router.get("/webhooks/{webhook_id}/stats", response_model=WebhookStats, tags=["stats"])
async def get_webhook_stats(webhook_id: str, engine: EngineDep) -> WebhookStats:
    """Delivery counters for one webhook.

    Raises:
        HTTPException: 404 if the webhook is not registered.
    """
    try:
        return engine.get_webhook_stats(webhook_id)
    except NotFoundError as e:
        raise _not_found(webhook_id) from e


@router.get("/stats", response_model=SystemStats, tags=["stats"])
async def get_system_stats(engine: EngineDep) -> SystemStats:
    """Aggregate delivery statistics and queue depths."""
    return engine.get_system_stats()


@router.post(
    "/events",
    response_model=EventResponse,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["events"],
)
async def emit_event(request: EmitEventRequest, engine: EngineDep) -> EventResponse:
    """Emit an event. Deliveries are queued and sent in the background.

    Raises:
        HTTPException: 400 if the event type is invalid.
    """
    try:
        event = engine.emit(request.type, request.data, request.metadata)
    except InvalidEventError as e:
        raise _bad_request(e) from e
    return EventResponse.from_event(event)
