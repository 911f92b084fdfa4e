"""Configuration management for the webhook engine."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

from .models.webhook import RetryPolicy


class WebhookSettings(BaseSettings):
    """Webhook engine configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the STUDENTPASS_WEBHOOKS_ prefix. For example:
        STUDENTPASS_WEBHOOKS_DELIVERY_TIMEOUT_SECONDS=5
        STUDENTPASS_WEBHOOKS_DEFAULT_RETRY_POLICY__MAX_RETRIES=5
    """

    # Delivery
    delivery_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="Timeout for a single outbound webhook request",
    )
    max_concurrent_deliveries: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum number of sends in flight at once",
    )
    max_queue_size: int = Field(
        default=0,
        ge=0,
        description=(
            "Bound on the active delivery queue. 0 means unbounded. When bounded, "
            "deliveries that do not fit are abandoned at admission."
        ),
    )
    tick_interval_seconds: float = Field(
        default=1.0,
        gt=0.0,
        le=60.0,
        description="Longest interval between scans of the retry holding area",
    )
    response_body_limit: int = Field(
        default=1000,
        ge=0,
        description="Maximum characters of a response body kept on a delivery",
    )
    default_retry_policy: RetryPolicy = Field(
        default_factory=RetryPolicy,
        description="Retry policy for webhooks registered without one",
    )

    # Wire format
    header_prefix: str = Field(
        default="StudentPass",
        min_length=1,
        description="Prefix for X-<prefix>-Event/Delivery/Signature/Timestamp headers",
    )
    user_agent: str = Field(
        default="StudentPassSystem-Webhooks/1.0",
        description="User-Agent sent with every delivery",
    )
    event_source: str = Field(
        default="student-pass-system",
        description="Value of metadata.source on emitted events",
    )
    schema_version: str = Field(
        default="1.0",
        description="Value of metadata.schema_version on emitted events",
    )

    # History
    history_size: int = Field(
        default=100,
        ge=0,
        le=10000,
        description="Terminal deliveries kept per webhook for inspection",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    model_config = {
        "env_prefix": "STUDENTPASS_WEBHOOKS_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    def header(self, name: str) -> str:
        """Build a prefixed delivery header name, e.g. ``X-StudentPass-Event``."""
        return f"X-{self.header_prefix}-{name}"


# Global settings instance
settings = WebhookSettings()
