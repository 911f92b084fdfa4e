"""In-memory webhook registry.

Owns every ``Webhook`` record. Registration, updates and stats updates from
delivery workers all go through one re-entrant lock; callers only ever
receive copies of the stored records.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .config import WebhookSettings
from .config import settings as default_settings
from .exceptions import InvalidConfigurationError, NotFoundError
from .models import RetryPolicy, Webhook, WebhookStats, utc_now

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("id", "url", "events")
_READ_ONLY_FIELDS = frozenset({"stats", "created_at", "updated_at"})


def _as_dict(config: Mapping[str, Any] | BaseModel | None) -> dict[str, Any]:
    if config is None:
        return {}
    if isinstance(config, BaseModel):
        return config.model_dump(exclude_unset=True)
    if not isinstance(config, Mapping):
        raise InvalidConfigurationError("config", "must be a mapping")
    return dict(config)


def _configuration_error(error: PydanticValidationError) -> InvalidConfigurationError:
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "config"
    return InvalidConfigurationError(field, first["msg"])


class WebhookRegistry:
    """Thread-safe store of registered webhooks.

    Example:
        ```python
        registry = WebhookRegistry()
        registry.register({
            "id": "gate-alerts",
            "url": "https://hooks.example.edu/gates",
            "events": ["entry.denied", "security.alert_created"],
            "secret": "s3cr3t",
        })
        ```
    """

    def __init__(self, settings: WebhookSettings | None = None) -> None:
        self._settings = settings or default_settings
        self._webhooks: dict[str, Webhook] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._webhooks)

    def __contains__(self, webhook_id: object) -> bool:
        with self._lock:
            return webhook_id in self._webhooks

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def default_headers(self) -> dict[str, str]:
        """Headers every delivery carries unless the webhook overrides them."""
        return {
            "Content-Type": "application/json",
            "User-Agent": self._settings.user_agent,
        }

    def _merge_headers(self, headers: Mapping[str, Any] | None) -> dict[str, str]:
        custom = {str(name): str(value) for name, value in (headers or {}).items()}
        overridden = {name.lower() for name in custom}
        merged = {
            name: value
            for name, value in self.default_headers().items()
            if name.lower() not in overridden
        }
        merged.update(custom)
        return merged

    def _merge_retry_policy(
        self, base: RetryPolicy, partial: Mapping[str, Any] | BaseModel | None
    ) -> dict[str, Any]:
        merged = base.model_dump()
        merged.update(_as_dict(partial))
        return merged

    def _build(self, data: dict[str, Any]) -> Webhook:
        try:
            return Webhook.model_validate(data)
        except PydanticValidationError as e:
            raise _configuration_error(e) from e

    def register(
        self, config: Mapping[str, Any] | BaseModel | None = None, **kwargs: Any
    ) -> Webhook:
        """Register a webhook, replacing any webhook with the same id.

        Args:
            config: Webhook configuration (``id``, ``url``, ``events`` required;
                ``secret``, ``headers``, ``filters``, ``transformations``,
                ``retry_policy``, ``metadata`` optional).
            **kwargs: Configuration fields, merged over ``config``.

        Returns:
            The registered webhook: active, with zeroed stats.

        Raises:
            InvalidConfigurationError: If required fields are missing or any
                field (including filter and transformation specs) is invalid.
        """
        data = {**_as_dict(config), **kwargs}

        for field in _REQUIRED_FIELDS:
            if not data.get(field):
                raise InvalidConfigurationError(field, "is required")
        for field in _READ_ONLY_FIELDS | {"status"}:
            data.pop(field, None)

        data["headers"] = self._merge_headers(data.get("headers"))
        data["retry_policy"] = self._merge_retry_policy(
            self._settings.default_retry_policy, data.get("retry_policy")
        )
        data["status"] = "active"
        data["stats"] = WebhookStats()
        data["created_at"] = utc_now()

        webhook = self._build(data)

        with self._lock:
            replaced = webhook.id in self._webhooks
            self._webhooks[webhook.id] = webhook

        logger.info(
            "Webhook %s: %s -> %s (%d event types)",
            "re-registered" if replaced else "registered",
            webhook.id,
            webhook.url,
            len(webhook.events),
        )
        return webhook.model_copy(deep=True)

    def unregister(self, webhook_id: str) -> bool:
        """Remove a webhook. Returns whether one was registered under ``webhook_id``."""
        with self._lock:
            removed = self._webhooks.pop(webhook_id, None)
        if removed is not None:
            logger.info("Webhook unregistered: %s", webhook_id)
        return removed is not None

    def update(
        self,
        webhook_id: str,
        partial: Mapping[str, Any] | BaseModel,
        *,
        reset_stats: bool = False,
    ) -> Webhook:
        """Merge ``partial`` over an existing webhook's configuration.

        ``headers``, ``filters``, ``transformations`` and ``metadata`` are
        replaced as a whole (default headers are re-applied underneath);
        ``retry_policy`` is merged field by field. Stats are preserved
        unless ``reset_stats`` is set.

        Raises:
            NotFoundError: If no webhook is registered under ``webhook_id``.
            InvalidConfigurationError: If the merged configuration is invalid.
        """
        changes = _as_dict(partial)

        if "id" in changes and changes["id"] != webhook_id:
            raise InvalidConfigurationError("id", "cannot be changed")
        read_only = _READ_ONLY_FIELDS & changes.keys()
        if read_only:
            raise InvalidConfigurationError(sorted(read_only)[0], "is read-only")

        with self._lock:
            existing = self._webhooks.get(webhook_id)
            if existing is None:
                raise NotFoundError("webhook", webhook_id)

            data = existing.model_dump()
            data["url"] = str(existing.url)
            data["stats"] = WebhookStats() if reset_stats else existing.stats.model_copy()

            for field, value in changes.items():
                if field == "headers":
                    data["headers"] = self._merge_headers(value)
                elif field == "retry_policy":
                    data["retry_policy"] = self._merge_retry_policy(existing.retry_policy, value)
                else:
                    data[field] = value
            data["updated_at"] = utc_now()

            webhook = self._build(data)
            self._webhooks[webhook_id] = webhook

        logger.info("Webhook updated: %s (fields: %s)", webhook_id, ", ".join(sorted(changes)))
        return webhook.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, webhook_id: str) -> Webhook:
        """Return a copy of a webhook.

        Raises:
            NotFoundError: If no webhook is registered under ``webhook_id``.
        """
        webhook = self.find(webhook_id)
        if webhook is None:
            raise NotFoundError("webhook", webhook_id)
        return webhook

    def find(self, webhook_id: str) -> Webhook | None:
        """Return a copy of a webhook, or None."""
        with self._lock:
            webhook = self._webhooks.get(webhook_id)
            return webhook.model_copy(deep=True) if webhook is not None else None

    def list_webhooks(self) -> list[Webhook]:
        """Return copies of all webhooks, oldest registration first."""
        with self._lock:
            webhooks = [webhook.model_copy(deep=True) for webhook in self._webhooks.values()]
        return sorted(webhooks, key=lambda webhook: webhook.created_at)

    def active_for(self, event_type: str) -> list[Webhook]:
        """Return copies of active webhooks subscribed to ``event_type``."""
        with self._lock:
            return [
                webhook.model_copy(deep=True)
                for webhook in self._webhooks.values()
                if webhook.subscribes_to(event_type)
            ]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def record_success(self, webhook_id: str, response_time_ms: float, at: datetime) -> bool:
        """Count a successful send. Returns False if the webhook is gone."""
        with self._lock:
            webhook = self._webhooks.get(webhook_id)
            if webhook is None:
                return False
            stats = webhook.stats
            stats.total_events += 1
            stats.successful_deliveries += 1
            stats.last_delivery = at
            stats.average_response_time = (stats.average_response_time + response_time_ms) / 2
            return True

    def record_failure(self, webhook_id: str) -> bool:
        """Count a failed send. Returns False if the webhook is gone."""
        with self._lock:
            webhook = self._webhooks.get(webhook_id)
            if webhook is None:
                return False
            webhook.stats.failed_deliveries += 1
            return True

    def stats(self, webhook_id: str) -> WebhookStats:
        """Return a copy of one webhook's stats.

        Raises:
            NotFoundError: If no webhook is registered under ``webhook_id``.
        """
        with self._lock:
            webhook = self._webhooks.get(webhook_id)
            if webhook is None:
                raise NotFoundError("webhook", webhook_id)
            return webhook.stats.model_copy()
