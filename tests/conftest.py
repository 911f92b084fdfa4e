"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest
from helpers import FakeEndpoint

from studentpass_webhooks.config import WebhookSettings
from studentpass_webhooks.engine import WebhookEngine
from studentpass_webhooks.registry import WebhookRegistry


@pytest.fixture
def settings() -> WebhookSettings:
    """Settings for tests: fast ticks, small bounds."""
    return WebhookSettings(
        tick_interval_seconds=0.05,
        max_concurrent_deliveries=4,
        history_size=10,
    )


@pytest.fixture
def registry(settings: WebhookSettings) -> WebhookRegistry:
    return WebhookRegistry(settings)


@pytest.fixture
def endpoint() -> FakeEndpoint:
    return FakeEndpoint()


@pytest.fixture
def engine(settings: WebhookSettings, endpoint: FakeEndpoint) -> WebhookEngine:
    """Engine whose deliveries go to ``endpoint``."""
    return WebhookEngine(settings, endpoint.client())
