"""Webhook engine: event intake, fan-out and the delivery driver.

Example:
    ```python
    from studentpass_webhooks import WebhookEngine

    async with WebhookEngine() as engine:
        engine.register_webhook({
            "id": "gate-alerts",
            "url": "https://hooks.example.edu/gates",
            "events": ["entry.denied"],
            "secret": "s3cr3t",
        })
        engine.emit("entry.denied", {"student_id": "S-1042", "gate": "north"})
    ```
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel

from .config import WebhookSettings
from .config import settings as default_settings
from .exceptions import (
    DeliveryError,
    InvalidEventError,
    NotFoundError,
    PermanentFailureError,
)
from .history import DeliveryHistory
from .models import Delivery, Event, EventType, SystemStats, Webhook, WebhookStats, utc_now
from .notifications import LifecycleNotifier, Listener, Notification, NotificationKind
from .queue import DeliveryQueue
from .registry import WebhookRegistry
from .scheduler import RetryScheduler
from .stats import StatsCollector
from .worker import DeliveryWorker

logger = logging.getLogger(__name__)

TEST_EVENT_MESSAGE = "This is a test webhook delivery"


@dataclass(frozen=True)
class TestDeliveryResult:
    """Outcome of a manual test delivery."""

    __test__ = False

    success: bool
    delivery: Delivery
    error: DeliveryError | None = None


class WebhookEngine:
    """Registers webhooks and delivers events to them.

    ``emit`` is synchronous: it only enqueues deliveries. Sends happen on the
    consumer tasks started by ``start`` (or ``async with engine``), or when
    the caller drives the engine with ``process_queue``/``process_retries``.

    Args:
        settings: Engine settings. Uses the global settings if None.
        client: Shared HTTP client. If None, the engine creates and owns one.
        registry: Webhook registry to use instead of a fresh one.
        history: Delivery history to use instead of a fresh one.
        notifier: Lifecycle notifier to use instead of a fresh one.
    """

    def __init__(
        self,
        settings: WebhookSettings | None = None,
        client: httpx.AsyncClient | None = None,
        *,
        registry: WebhookRegistry | None = None,
        history: DeliveryHistory | None = None,
        notifier: LifecycleNotifier | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.registry = registry or WebhookRegistry(self.settings)
        self.history = history or DeliveryHistory(self.settings.history_size)
        self.notifier = notifier or LifecycleNotifier()
        self.queue = DeliveryQueue(self.settings.max_queue_size)
        self.worker = DeliveryWorker(self.registry, self.settings, client)
        self.scheduler = RetryScheduler(self.queue)
        self.stats = StatsCollector(self.registry, self.queue, self.worker)
        self._tasks: list[asyncio.Task[None]] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        """Start the consumer tasks and the retry driver."""
        if self._tasks:
            return
        consumers = self.settings.max_concurrent_deliveries
        self._tasks = [
            asyncio.create_task(self._consume(), name=f"webhook-consumer-{i}")
            for i in range(consumers)
        ]
        self._tasks.append(asyncio.create_task(self._drive_retries(), name="webhook-retries"))
        logger.info("Webhook engine started with %d consumers", consumers)

    async def stop(self) -> None:
        """Cancel the background tasks and close the owned HTTP client.

        Deliveries still queued or held for retry stay in memory and are
        sent if the engine is started again.
        """
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.worker.aclose()
        if tasks:
            logger.info("Webhook engine stopped")

    async def drain(self) -> None:
        """Wait until every queued delivery has been processed once."""
        await self.queue.join()

    async def __aenter__(self) -> WebhookEngine:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def register_webhook(
        self, config: Mapping[str, Any] | BaseModel | None = None, **kwargs: Any
    ) -> Webhook:
        """Register (or replace) a webhook. See ``WebhookRegistry.register``."""
        return self.registry.register(config, **kwargs)

    def update_webhook(
        self,
        webhook_id: str,
        partial: Mapping[str, Any] | BaseModel,
        *,
        reset_stats: bool = False,
    ) -> Webhook:
        return self.registry.update(webhook_id, partial, reset_stats=reset_stats)

    def unregister_webhook(self, webhook_id: str) -> bool:
        """Remove a webhook and its delivery history.

        Deliveries already queued for it are abandoned when they come up.
        """
        removed = self.registry.unregister(webhook_id)
        self.history.forget(webhook_id)
        return removed

    def get_webhook(self, webhook_id: str) -> Webhook:
        return self.registry.get(webhook_id)

    def list_webhooks(self) -> list[Webhook]:
        return self.registry.list_webhooks()

    def subscribe(self, kind: NotificationKind | str, listener: Listener) -> Any:
        """Listen for a lifecycle notification. Returns an unsubscribe callable."""
        return self.notifier.subscribe(kind, listener)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _build_event(
        self,
        event_type: str,
        data: Any,
        metadata: Mapping[str, Any] | None,
    ) -> Event:
        now = utc_now()
        return Event(
            type=event_type,
            data=copy.deepcopy(data) if data is not None else {},
            metadata={
                **copy.deepcopy(dict(metadata or {})),
                "timestamp": now.isoformat(),
                "source": self.settings.event_source,
                "schema_version": self.settings.schema_version,
            },
            created_at=now,
        )

    def emit(
        self,
        event_type: str | EventType,
        data: Any = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Event:
        """Accept an event and queue one delivery per matching webhook.

        Matching webhooks are active, subscribed to ``event_type`` and pass
        their filters. Having none is not an error. Never waits for or
        raises on delivery problems.

        Args:
            event_type: Event type, e.g. ``"entry.recorded"``.
            data: Event payload; deep-copied.
            metadata: Extra metadata; ``timestamp``, ``source`` and
                ``schema_version`` are always set by the engine.

        Returns:
            The created event.

        Raises:
            InvalidEventError: If ``event_type`` is empty or not a string.
        """
        if isinstance(event_type, Enum):
            event_type = event_type.value
        if not isinstance(event_type, str) or not event_type.strip():
            raise InvalidEventError("Event type must be a non-empty string")

        event = self._build_event(event_type, data, metadata)
        self._notify(NotificationKind.EVENT_EMITTED, event)

        queued = 0
        for webhook in self.registry.active_for(event.type):
            if not webhook.filter_set.matches(event):
                logger.debug("Event %s filtered out for webhook %s", event.id, webhook.id)
                continue
            if self._enqueue(Delivery.for_event(webhook, event)):
                queued += 1

        logger.info("Event emitted: %s (%s), %d deliveries queued", event.type, event.id, queued)
        return event

    def _enqueue(self, delivery: Delivery) -> bool:
        if self.queue.put(delivery):
            self._notify(NotificationKind.DELIVERY_QUEUED, delivery.event, delivery)
            return True

        delivery.abandon("queue_full", "Delivery queue is full")
        self.registry.record_failure(delivery.webhook_id)
        logger.warning(
            "Delivery queue full (%d), dropped %s for webhook %s",
            self.queue.maxsize,
            delivery.event.type,
            delivery.webhook_id,
        )
        self._finish_permanently(delivery)
        return False

    # ------------------------------------------------------------------
    # Test deliveries
    # ------------------------------------------------------------------

    async def test_webhook(self, webhook_id: str) -> TestDeliveryResult:
        """Send one synthetic ``webhook.test`` event to a webhook.

        Sent regardless of the webhook's status and filters, exactly once:
        a failed test is never retried. Stats are updated as for any send.

        Raises:
            NotFoundError: If no webhook is registered under ``webhook_id``.
        """
        webhook = self.registry.get(webhook_id)
        event = self._build_event(
            EventType.WEBHOOK_TEST.value, {"message": TEST_EVENT_MESSAGE}, {"test": True}
        )
        delivery = Delivery.for_event(webhook, event, is_test=True)

        error = await self._send(delivery)
        if error is not None:
            delivery.mark_failed_permanently()

        logger.info(
            "Test delivery to webhook %s %s",
            webhook_id,
            "succeeded" if error is None else f"failed: {error.message}",
        )
        return TestDeliveryResult(success=error is None, delivery=delivery, error=error)

    # ------------------------------------------------------------------
    # Stats and history
    # ------------------------------------------------------------------

    def get_webhook_stats(self, webhook_id: str) -> WebhookStats:
        return self.stats.webhook_stats(webhook_id)

    def get_system_stats(self) -> SystemStats:
        return self.stats.system_stats()

    def get_delivery_history(self, webhook_id: str, limit: int = 100) -> list[Delivery]:
        """Recent finished deliveries for a webhook, newest first.

        Raises:
            NotFoundError: If no webhook is registered under ``webhook_id``.
        """
        if webhook_id not in self.registry:
            raise NotFoundError("webhook", webhook_id)
        return self.history.for_webhook(webhook_id, limit)

    # ------------------------------------------------------------------
    # Driving deliveries
    # ------------------------------------------------------------------

    async def process_queue(self) -> list[Delivery]:
        """Send every delivery currently in the active queue.

        Returns:
            The processed deliveries, in claim order.
        """
        claimed: list[Delivery] = []
        while True:
            delivery = self.queue.get_nowait()
            if delivery is None:
                break
            claimed.append(delivery)

        try:
            return list(await asyncio.gather(*(self._process(d) for d in claimed)))
        finally:
            for _ in claimed:
                self.queue.task_done()

    def process_retries(self, now: datetime | None = None) -> int:
        """Promote retries due at ``now`` into the active queue.

        Returns:
            Number of deliveries promoted.
        """
        promoted = self.queue.promote_ready(now)
        if promoted:
            logger.debug("Promoted %d retries", len(promoted))
        return len(promoted)

    async def run_once(self, now: datetime | None = None) -> list[Delivery]:
        """Promote due retries, then process the active queue."""
        self.process_retries(now)
        return await self.process_queue()

    async def _consume(self) -> None:
        while True:
            delivery = await self.queue.get()
            try:
                await self._process(delivery)
            except Exception:
                logger.exception("Delivery %s could not be processed", delivery.id)
            finally:
                self.queue.task_done()

    async def _drive_retries(self) -> None:
        tick = self.settings.tick_interval_seconds
        while True:
            self.queue.promote_ready()
            timeout = tick
            next_retry_at = self.queue.next_retry_at()
            if next_retry_at is not None:
                until_due = (next_retry_at - utc_now()).total_seconds()
                # Due but not promoted means the active queue is full
                if until_due > 0:
                    timeout = min(tick, until_due)
            await self.queue.wait_for_retry(timeout)

    async def _send(self, delivery: Delivery) -> DeliveryError | None:
        """Run one worker attempt; an unexpected exception mid-send fails the attempt."""
        try:
            return await self.worker.deliver(delivery)
        except Exception as e:
            if delivery.status != "delivering":
                raise
            logger.exception("Unexpected error delivering %s", delivery.id)
            error = DeliveryError(f"Unexpected error: {e}")
            delivery.mark_failed(error)
            self.registry.record_failure(delivery.webhook_id)
            return error

    async def _process(self, delivery: Delivery) -> Delivery:
        webhook = self.registry.find(delivery.webhook_id)
        if webhook is None or not webhook.is_active:
            reason = "unregistered" if webhook is None else "disabled"
            delivery.abandon("webhook_unavailable", f"Webhook {delivery.webhook_id} is {reason}")
            logger.warning(
                "Abandoned delivery %s: webhook %s is %s", delivery.id, delivery.webhook_id, reason
            )
            self._finish_permanently(delivery)
            return delivery

        delivery.webhook = webhook
        error = await self._send(delivery)

        if error is None:
            self._notify(NotificationKind.DELIVERY_SUCCEEDED, delivery.event, delivery)
            if delivery.webhook_id in self.registry:
                self.history.record(delivery)
            return delivery

        self._notify(NotificationKind.DELIVERY_ERROR, delivery.event, delivery, error)
        if self.scheduler.handle_failure(delivery, retryable=error.retryable):
            self._notify(NotificationKind.DELIVERY_RETRY_SCHEDULED, delivery.event, delivery)
        else:
            self._finish_permanently(delivery)
        return delivery

    def _finish_permanently(self, delivery: Delivery) -> None:
        last_error = delivery.error.message if delivery.error else None
        error = PermanentFailureError(delivery.id, delivery.attempt, last_error)
        self._notify(NotificationKind.DELIVERY_FAILED_PERMANENTLY, delivery.event, delivery, error)
        if not delivery.is_test and delivery.webhook_id in self.registry:
            self.history.record(delivery)

    def _notify(
        self,
        kind: NotificationKind,
        event: Event,
        delivery: Delivery | None = None,
        error: Any = None,
    ) -> None:
        self.notifier.notify(Notification(kind=kind, event=event, delivery=delivery, error=error))
