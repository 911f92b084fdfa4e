"""Tests for the delivery worker."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from helpers import FakeEndpoint, webhook_config

from studentpass_webhooks.config import WebhookSettings
from studentpass_webhooks.exceptions import (
    DeliveryHTTPError,
    DeliveryNetworkError,
    DeliveryTimeoutError,
    PayloadError,
)
from studentpass_webhooks.models import Delivery, Event
from studentpass_webhooks.registry import WebhookRegistry
from studentpass_webhooks.signing import compute_signature, verify
from studentpass_webhooks.worker import DeliveryWorker


@pytest.fixture
def worker(registry: WebhookRegistry, settings: WebhookSettings, endpoint: FakeEndpoint):
    return DeliveryWorker(registry, settings, endpoint.client())


def queued_delivery(registry: WebhookRegistry, data=None, **overrides) -> Delivery:
    webhook = registry.register(webhook_config(**overrides))
    event = Event(
        type="entry.recorded",
        data=data if data is not None else {"student": {"id": "S-1042"}, "gate": "north"},
        metadata={"source": "student-pass-system"},
    )
    return Delivery.for_event(webhook, event)


class TestPayloadAndHeaders:
    """Tests for the request the worker sends."""

    @pytest.mark.asyncio
    async def test_request_shape(self, worker, registry, endpoint):
        delivery = queued_delivery(registry, headers={"X-Campus": "north"})

        error = await worker.deliver(delivery)

        assert error is None
        (request,) = endpoint.requests
        assert request.method == "POST"
        assert str(request.url) == "https://hooks.example.edu/gates"
        assert request.headers["content-type"] == "application/json"
        assert request.headers["user-agent"] == "StudentPassSystem-Webhooks/1.0"
        assert request.headers["x-campus"] == "north"
        assert request.headers["x-studentpass-event"] == "entry.recorded"
        assert request.headers["x-studentpass-delivery"] == delivery.id
        assert request.headers["x-studentpass-timestamp"].isdigit()
        assert "x-studentpass-signature" not in request.headers

        body = json.loads(request.content)
        assert body == {
            "id": delivery.event.id,
            "type": "entry.recorded",
            "created": delivery.event.created_at.isoformat(),
            "data": {"student": {"id": "S-1042"}, "gate": "north"},
            "metadata": {"source": "student-pass-system"},
        }

    @pytest.mark.asyncio
    async def test_signature_covers_sent_bytes(self, worker, registry, endpoint):
        """Recomputing the HMAC over the received body matches the header."""
        delivery = queued_delivery(registry, secret="s3cr3t")

        await worker.deliver(delivery)

        (request,) = endpoint.requests
        signature = request.headers["x-studentpass-signature"]
        assert signature == compute_signature(request.content, "s3cr3t")
        assert verify(request.content, signature, "s3cr3t")

    @pytest.mark.asyncio
    async def test_transformation_applied(self, worker, registry, endpoint):
        delivery = queued_delivery(
            registry,
            transformations={
                "student_id": "student.id",
                "gate": {"source": "gate", "format": "uppercase"},
            },
        )

        await worker.deliver(delivery)

        body = json.loads(endpoint.requests[0].content)
        assert body["data"] == {"student_id": "S-1042", "gate": "NORTH"}

    @pytest.mark.asyncio
    async def test_custom_header_prefix(self, registry, endpoint):
        settings = WebhookSettings(header_prefix="Campus")
        worker = DeliveryWorker(registry, settings, endpoint.client())

        await worker.deliver(queued_delivery(registry, secret="k"))

        headers = endpoint.requests[0].headers
        assert "x-campus-event" in headers
        assert "x-campus-signature" in headers


class TestOutcomes:
    """Tests for success and failure handling."""

    @pytest.mark.asyncio
    async def test_success_updates_delivery_and_stats(self, worker, registry):
        delivery = queued_delivery(registry)

        await worker.deliver(delivery)

        assert delivery.status == "delivered"
        assert delivery.attempt == 1
        assert delivery.response.status_code == 200
        assert delivery.response.body == {"ok": True}
        assert delivery.response.response_time_ms >= 0

        stats = registry.stats("gate-alerts")
        assert stats.total_events == 1
        assert stats.successful_deliveries == 1
        assert stats.last_delivery is not None

    @pytest.mark.asyncio
    async def test_non_json_body_kept_as_text(self, worker, registry, endpoint):
        endpoint.reply(httpx.Response(200, text="accepted"))
        delivery = queued_delivery(registry)

        await worker.deliver(delivery)

        assert delivery.response.body == "accepted"

    @pytest.mark.asyncio
    async def test_long_body_truncated(self, registry, endpoint):
        settings = WebhookSettings(response_body_limit=10)
        worker = DeliveryWorker(registry, settings, endpoint.client())
        endpoint.reply(httpx.Response(200, text="x" * 50))
        delivery = queued_delivery(registry)

        await worker.deliver(delivery)

        assert delivery.response.body == "x" * 10

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [301, 400, 404, 500, 503])
    async def test_non_2xx_is_http_error(self, worker, registry, endpoint, status_code):
        endpoint.reply(status_code)
        delivery = queued_delivery(registry)

        error = await worker.deliver(delivery)

        assert isinstance(error, DeliveryHTTPError)
        assert error.response_status == status_code
        assert delivery.status == "failed"
        assert delivery.error.code == "http_error"
        assert delivery.error.response_body == "boom"
        stats = registry.stats("gate-alerts")
        assert stats.failed_deliveries == 1
        assert stats.total_events == 0

    @pytest.mark.asyncio
    async def test_connection_error(self, worker, registry, endpoint):
        endpoint.reply(httpx.ConnectError("connection refused"))
        delivery = queued_delivery(registry)

        error = await worker.deliver(delivery)

        assert isinstance(error, DeliveryNetworkError)
        assert not isinstance(error, DeliveryTimeoutError)
        assert delivery.error.code == "network_error"
        assert "connection refused" in delivery.error.message

    @pytest.mark.asyncio
    async def test_timeout(self, worker, registry, endpoint):
        endpoint.reply(httpx.ReadTimeout("timed out"))
        delivery = queued_delivery(registry)

        error = await worker.deliver(delivery)

        assert isinstance(error, DeliveryTimeoutError)
        assert error.retryable
        assert delivery.error.code == "timeout"
        assert registry.stats("gate-alerts").failed_deliveries == 1

    @pytest.mark.asyncio
    async def test_unserializable_payload(self, worker, registry, endpoint):
        delivery = queued_delivery(registry, data={"blob": object()})

        error = await worker.deliver(delivery)

        assert isinstance(error, PayloadError)
        assert not error.retryable
        assert delivery.status == "failed"
        assert endpoint.requests == []

    @pytest.mark.asyncio
    async def test_in_flight_returns_to_zero(self, worker, registry):
        await worker.deliver(queued_delivery(registry))

        assert worker.in_flight == 0


class TestClientOwnership:
    """Tests for the lazily created HTTP client."""

    @pytest.mark.asyncio
    async def test_owned_client_created_with_timeout_and_closed(self, registry):
        settings = WebhookSettings(delivery_timeout_seconds=2.5)
        worker = DeliveryWorker(registry, settings)

        with patch("httpx.AsyncClient") as mock_client_class:
            mock_client = mock_client_class.return_value
            mock_client.post = AsyncMock(side_effect=httpx.ConnectTimeout("slow"))
            mock_client.aclose = AsyncMock()

            error = await worker.deliver(queued_delivery(registry))
            await worker.aclose()

        mock_client_class.assert_called_once_with(timeout=2.5)
        assert isinstance(error, DeliveryTimeoutError)
        mock_client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self, registry, settings):
        client = AsyncMock(spec=httpx.AsyncClient)
        worker = DeliveryWorker(registry, settings, client)

        await worker.aclose()

        client.aclose.assert_not_awaited()
