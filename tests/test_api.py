"""Tests for the webhook management REST API."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from helpers import webhook_config

from studentpass_webhooks.api.app import create_app
from studentpass_webhooks.api.router import router, set_engine
from studentpass_webhooks.engine import WebhookEngine
from studentpass_webhooks.models import Delivery, DeliveryResponse, Event


@pytest.fixture
def api_engine(settings, endpoint):
    return WebhookEngine(settings, endpoint.client())


@pytest.fixture
def test_app(api_engine):
    """Create a test FastAPI app backed by an engine that is not started."""
    app = FastAPI()
    app.include_router(router, prefix="/api/v1")
    set_engine(api_engine)
    yield app
    set_engine(None)


@pytest.fixture
def client(test_app):
    return TestClient(test_app)


@pytest.fixture
def registered(client):
    response = client.post("/api/v1/webhooks", json=webhook_config(secret="s3cr3t"))
    assert response.status_code == 201
    return response.json()


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_when_engine_initialized(self, client):
        response = client.get("/api/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["engine_running"] is False
        assert "version" in data

    def test_health_when_engine_not_initialized(self):
        app = FastAPI()
        app.include_router(router, prefix="/api/v1")
        set_engine(None)

        response = TestClient(app).get("/api/v1/health")

        assert response.status_code == 200
        assert response.json()["status"] == "unhealthy"

    def test_other_endpoints_unavailable_without_engine(self):
        app = FastAPI()
        app.include_router(router, prefix="/api/v1")
        set_engine(None)

        response = TestClient(app).get("/api/v1/webhooks")

        assert response.status_code == 503


class TestEventTypesEndpoint:
    """Tests for /event-types endpoint."""

    def test_catalog(self, client):
        data = client.get("/api/v1/event-types").json()

        assert "entry.recorded" in data["event_types"]
        assert "webhook.test" in data["event_types"]
        assert "entry.recorded" in data["by_domain"]["entry"]


class TestWebhookEndpoints:
    """Tests for webhook CRUD endpoints."""

    def test_create(self, registered):
        assert registered["id"] == "gate-alerts"
        assert registered["url"] == "https://hooks.example.edu/gates"
        assert registered["status"] == "active"
        assert registered["has_secret"] is True
        assert "secret" not in registered
        assert registered["stats"]["total_events"] == 0
        assert registered["retry_policy"]["max_retries"] == 3

    def test_create_invalid_filter(self, client):
        config = webhook_config(filters={"data.year": {"$between": [1, 3]}})

        response = client.post("/api/v1/webhooks", json=config)

        assert response.status_code == 400
        assert "filters.data.year" in response.json()["detail"]

    def test_create_invalid_url(self, client):
        response = client.post("/api/v1/webhooks", json=webhook_config(url="not a url"))

        assert response.status_code == 400

    def test_create_missing_events(self, client):
        response = client.post("/api/v1/webhooks", json=webhook_config(events=[]))

        assert response.status_code == 422

    def test_list(self, client, registered):
        client.post("/api/v1/webhooks", json=webhook_config(id="library"))

        data = client.get("/api/v1/webhooks").json()

        assert data["count"] == 2
        assert [w["id"] for w in data["webhooks"]] == ["gate-alerts", "library"]

    def test_get(self, client, registered):
        response = client.get("/api/v1/webhooks/gate-alerts")

        assert response.status_code == 200
        assert response.json()["id"] == "gate-alerts"

    def test_get_missing(self, client):
        assert client.get("/api/v1/webhooks/nope").status_code == 404

    def test_patch(self, client, registered):
        response = client.patch(
            "/api/v1/webhooks/gate-alerts",
            json={"status": "disabled", "retry_policy": {"max_retries": 1}},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "disabled"
        assert data["retry_policy"]["max_retries"] == 1
        assert data["retry_policy"]["delays"] == [1.0, 5.0, 30.0]
        assert data["url"] == "https://hooks.example.edu/gates"
        assert data["updated_at"] is not None

    def test_patch_missing(self, client):
        response = client.patch("/api/v1/webhooks/nope", json={"status": "disabled"})

        assert response.status_code == 404

    def test_patch_invalid(self, client, registered):
        response = client.patch(
            "/api/v1/webhooks/gate-alerts", json={"transformations": {"x": 42}}
        )

        assert response.status_code == 400

    def test_delete(self, client, registered):
        assert client.delete("/api/v1/webhooks/gate-alerts").status_code == 204
        assert client.get("/api/v1/webhooks/gate-alerts").status_code == 404
        assert client.delete("/api/v1/webhooks/gate-alerts").status_code == 404


class TestTestEndpoint:
    """Tests for /webhooks/{id}/test endpoint."""

    def test_success(self, client, registered, endpoint):
        response = client.post("/api/v1/webhooks/gate-alerts/test")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["delivery"]["status"] == "delivered"
        assert data["delivery"]["event_type"] == "webhook.test"
        assert data["delivery"]["is_test"] is True
        assert data["error"] is None
        assert len(endpoint.requests) == 1

    def test_failure_reported_in_body(self, client, registered, endpoint):
        endpoint.reply(500)

        response = client.post("/api/v1/webhooks/gate-alerts/test")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["delivery"]["status"] == "failed-permanently"
        assert data["error"]["code"] == "http_error"
        assert len(endpoint.requests) == 1

    def test_missing(self, client):
        assert client.post("/api/v1/webhooks/nope/test").status_code == 404


class TestDeliveryHistoryEndpoint:
    """Tests for /webhooks/{id}/deliveries endpoint."""

    def test_recent_deliveries(self, client, registered, api_engine):
        webhook = api_engine.get_webhook("gate-alerts")
        for _ in range(3):
            delivery = Delivery.for_event(webhook, Event(type="entry.recorded"))
            delivery.begin_attempt()
            delivery.mark_delivered(DeliveryResponse(status_code=200, response_time_ms=4.0))
            api_engine.history.record(delivery)

        data = client.get("/api/v1/webhooks/gate-alerts/deliveries?limit=2").json()

        assert data["webhook_id"] == "gate-alerts"
        assert data["count"] == 2
        assert data["deliveries"][0]["status"] == "delivered"
        assert data["deliveries"][0]["response_status"] == 200

    def test_limit_bounds(self, client, registered):
        response = client.get("/api/v1/webhooks/gate-alerts/deliveries?limit=0")

        assert response.status_code == 422

    def test_missing(self, client):
        assert client.get("/api/v1/webhooks/nope/deliveries").status_code == 404


class TestStatsEndpoints:
    """Tests for stats endpoints."""

    def test_webhook_stats(self, client, registered):
        client.post("/api/v1/webhooks/gate-alerts/test")

        data = client.get("/api/v1/webhooks/gate-alerts/stats").json()

        assert data["total_events"] == 1
        assert data["successful_deliveries"] == 1

    def test_webhook_stats_missing(self, client):
        assert client.get("/api/v1/webhooks/nope/stats").status_code == 404

    def test_system_stats(self, client, registered):
        data = client.get("/api/v1/stats").json()

        assert data["total_webhooks"] == 1
        assert data["active_webhooks"] == 1
        assert data["queued_deliveries"] == 0


class TestEventsEndpoint:
    """Tests for /events endpoint."""

    def test_emit_queues_deliveries(self, client, registered, api_engine):
        response = client.post(
            "/api/v1/events",
            json={"type": "entry.recorded", "data": {"gate": "north"}},
        )

        assert response.status_code == 202
        data = response.json()
        assert data["type"] == "entry.recorded"
        assert data["metadata"]["source"] == "student-pass-system"
        assert api_engine.queue.depth == 1

    def test_unsubscribed_event_not_queued(self, client, registered, api_engine):
        response = client.post("/api/v1/events", json={"type": "pass.created"})

        assert response.status_code == 202
        assert api_engine.queue.depth == 0

    def test_missing_type(self, client):
        assert client.post("/api/v1/events", json={"data": {}}).status_code == 422


class TestAppLifespan:
    """Tests for the application factory."""

    def test_lifespan_starts_and_stops_engine(self, settings):
        with TestClient(create_app(settings)) as client:
            data = client.get("/api/v1/health").json()
            assert data["status"] == "healthy"
            assert data["engine_running"] is True

        response = TestClient(create_app(settings)).get("/api/v1/webhooks")
        assert response.status_code == 503

    def test_request_id_echoed(self, settings):
        client = TestClient(create_app(settings))

        response = client.get("/api/v1/health", headers={"X-Request-ID": "req-gate-7"})

        assert response.headers["X-Request-ID"] == "req-gate-7"

    def test_request_id_generated(self, settings):
        client = TestClient(create_app(settings))

        response = client.get("/api/v1/health")

        assert response.headers["X-Request-ID"].startswith("req_")
