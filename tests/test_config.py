"""Unit tests for engine configuration."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from studentpass_webhooks.config import WebhookSettings
from studentpass_webhooks.models import RetryPolicy


class TestWebhookSettings:
    """Tests for WebhookSettings."""

    def test_default_settings(self):
        """Default settings should be reasonable."""
        # Use _env_file=None to prevent reading from .env file
        settings = WebhookSettings(_env_file=None)
        assert settings.delivery_timeout_seconds == 10.0
        assert settings.max_concurrent_deliveries == 10
        assert settings.max_queue_size == 0
        assert settings.header_prefix == "StudentPass"
        assert settings.user_agent == "StudentPassSystem-Webhooks/1.0"
        assert settings.event_source == "student-pass-system"
        assert settings.schema_version == "1.0"
        assert settings.history_size == 100

    def test_default_retry_policy(self):
        settings = WebhookSettings(_env_file=None)
        assert isinstance(settings.default_retry_policy, RetryPolicy)
        assert settings.default_retry_policy.max_retries == 3
        assert settings.default_retry_policy.delays == [1.0, 5.0, 30.0]
        assert settings.default_retry_policy.backoff_multiplier == 1.0

    def test_header(self):
        settings = WebhookSettings(header_prefix="Campus", _env_file=None)
        assert settings.header("Signature") == "X-Campus-Signature"

    def test_env_prefix(self):
        """Settings should use the STUDENTPASS_WEBHOOKS_ prefix."""
        env = {
            "STUDENTPASS_WEBHOOKS_DELIVERY_TIMEOUT_SECONDS": "2.5",
            "STUDENTPASS_WEBHOOKS_LOG_LEVEL": "DEBUG",
        }
        with patch.dict(os.environ, env):
            settings = WebhookSettings(_env_file=None)
            assert settings.delivery_timeout_seconds == 2.5
            assert settings.log_level == "DEBUG"

    def test_nested_retry_policy_from_env(self):
        env = {"STUDENTPASS_WEBHOOKS_DEFAULT_RETRY_POLICY__MAX_RETRIES": "7"}
        with patch.dict(os.environ, env):
            settings = WebhookSettings(_env_file=None)
            assert settings.default_retry_policy.max_retries == 7

    def test_log_formats(self):
        assert WebhookSettings(log_format="text", _env_file=None).log_format == "text"
        with pytest.raises(ValidationError):
            WebhookSettings(log_format="xml", _env_file=None)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"delivery_timeout_seconds": 0},
            {"max_concurrent_deliveries": 0},
            {"max_queue_size": -1},
            {"tick_interval_seconds": 0},
            {"history_size": -1},
            {"header_prefix": ""},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValidationError):
            WebhookSettings(_env_file=None, **overrides)
