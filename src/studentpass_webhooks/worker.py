"""Delivery worker: one signed HTTP POST per attempt.

Each attempt transforms the event data, builds the payload, signs the exact
bytes it sends, POSTs them with a bounded timeout and records the outcome on
the delivery and in the webhook's stats. Retry decisions are left to the
``RetryScheduler``.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import TYPE_CHECKING, Any

import httpx

from .exceptions import (
    DeliveryError,
    DeliveryHTTPError,
    DeliveryNetworkError,
    DeliveryTimeoutError,
    PayloadError,
)
from .models import Delivery, DeliveryResponse, utc_now
from .signing import canonical_json, sign

if TYPE_CHECKING:
    from .config import WebhookSettings
    from .registry import WebhookRegistry

logger = logging.getLogger(__name__)


class DeliveryWorker:
    """Sends deliveries to webhook endpoints.

    Args:
        registry: Registry whose stats are updated after each send.
        settings: Engine settings (timeout, header prefix, concurrency).
        client: Shared HTTP client. If None, one is created on first use and
            closed by ``aclose``.
    """

    def __init__(
        self,
        registry: WebhookRegistry,
        settings: WebhookSettings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._registry = registry
        self._settings = settings
        self._client = client
        self._owns_client = client is None
        self._timeout = settings.delivery_timeout_seconds
        self._semaphore = asyncio.Semaphore(settings.max_concurrent_deliveries)
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        """Sends currently in progress."""
        return self._in_flight

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client if this worker created it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_payload(self, delivery: Delivery) -> dict[str, Any]:
        """Body delivered to the endpoint: ``{id, type, created, data, metadata}``."""
        event = delivery.event
        return {
            "id": event.id,
            "type": event.type,
            "created": event.created_at.isoformat(),
            "data": delivery.webhook.transformation.apply(event),
            "metadata": event.metadata,
        }

    def build_headers(self, delivery: Delivery, signature: str | None) -> dict[str, str]:
        """Webhook headers plus the event, delivery, signature and timestamp headers."""
        settings = self._settings
        headers = dict(delivery.webhook.headers)
        headers[settings.header("Event")] = delivery.event.type
        headers[settings.header("Delivery")] = delivery.id
        if signature is not None:
            headers[settings.header("Signature")] = signature
        headers[settings.header("Timestamp")] = str(int(time.time()))
        return headers

    async def deliver(self, delivery: Delivery) -> DeliveryError | None:
        """Make one send attempt.

        The delivery must be ``queued`` or ``retry-scheduled``; it ends the
        attempt ``delivered`` or ``failed``.

        Returns:
            None on success, otherwise the error that failed the attempt.
        """
        async with self._semaphore:
            self._in_flight += 1
            try:
                return await self._attempt(delivery)
            finally:
                self._in_flight -= 1

    async def _attempt(self, delivery: Delivery) -> DeliveryError | None:
        delivery.begin_attempt()
        webhook = delivery.webhook

        try:
            body = canonical_json(self.build_payload(delivery))
        except (TypeError, ValueError) as e:
            return self._fail(delivery, PayloadError(f"Payload could not be serialized: {e}"))

        headers = self.build_headers(delivery, sign(body, webhook.secret))
        started = time.perf_counter()

        try:
            response = await self._post(str(webhook.url), body, headers)
        except DeliveryError as e:
            return self._fail(delivery, e)

        response_time_ms = (time.perf_counter() - started) * 1000
        delivery.mark_delivered(
            DeliveryResponse(
                status_code=response.status_code,
                headers=dict(response.headers),
                body=self._response_body(response),
                response_time_ms=response_time_ms,
            )
        )
        self._registry.record_success(webhook.id, response_time_ms, utc_now())

        logger.info(
            "Webhook delivered: %s to %s (status %d, attempt %d, %.1fms)",
            delivery.event.type,
            webhook.url,
            response.status_code,
            delivery.attempt,
            response_time_ms,
        )
        return None

    async def _post(self, url: str, body: bytes, headers: dict[str, str]) -> httpx.Response:
        try:
            response = await self.client.post(
                url, content=body, headers=headers, timeout=self._timeout
            )
        except httpx.TimeoutException as e:
            raise DeliveryTimeoutError(f"Request timed out after {self._timeout}s") from e
        except httpx.RequestError as e:
            raise DeliveryNetworkError(str(e) or type(e).__name__) from e

        if not 200 <= response.status_code < 300:
            raise DeliveryHTTPError(
                f"HTTP {response.status_code}",
                response_status=response.status_code,
                response_body=self._truncate(response.text),
            )
        return response

    def _fail(self, delivery: Delivery, error: DeliveryError) -> DeliveryError:
        delivery.mark_failed(error)
        self._registry.record_failure(delivery.webhook_id)
        logger.warning(
            "Webhook delivery failed: %s to %s (attempt %d): %s",
            delivery.event.type,
            delivery.webhook.url,
            delivery.attempt,
            error.message,
        )
        return error

    def _truncate(self, text: str | None) -> str | None:
        if not text:
            return None
        return text[: self._settings.response_body_limit]

    def _response_body(self, response: httpx.Response) -> Any:
        text = response.text
        if not text:
            return None
        if len(text) > self._settings.response_body_limit:
            return self._truncate(text)
        try:
            return json.loads(text)
        except ValueError:
            return text
