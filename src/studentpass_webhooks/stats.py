"""Read-only delivery statistics derived from the registry and queues."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .models import SystemStats, WebhookStats

if TYPE_CHECKING:
    from .queue import DeliveryQueue
    from .registry import WebhookRegistry
    from .worker import DeliveryWorker


class StatsCollector:
    """Aggregates per-webhook counters and queue depths."""

    def __init__(
        self,
        registry: WebhookRegistry,
        queue: DeliveryQueue,
        worker: DeliveryWorker | None = None,
    ) -> None:
        self._registry = registry
        self._queue = queue
        self._worker = worker

    def webhook_stats(self, webhook_id: str) -> WebhookStats:
        """Stats for one webhook.

        Raises:
            NotFoundError: If the webhook is not registered.
        """
        return self._registry.stats(webhook_id)

    def system_stats(self) -> SystemStats:
        webhooks = self._registry.list_webhooks()
        response_times = [webhook.stats.average_response_time for webhook in webhooks]

        return SystemStats(
            total_webhooks=len(webhooks),
            active_webhooks=sum(1 for webhook in webhooks if webhook.is_active),
            total_events=sum(webhook.stats.total_events for webhook in webhooks),
            successful_deliveries=sum(webhook.stats.successful_deliveries for webhook in webhooks),
            failed_deliveries=sum(webhook.stats.failed_deliveries for webhook in webhooks),
            queued_deliveries=self._queue.depth,
            retry_queue_size=self._queue.retry_depth,
            in_flight_deliveries=self._worker.in_flight if self._worker else 0,
            average_response_time=(
                sum(response_times) / len(response_times) if response_times else 0.0
            ),
        )
