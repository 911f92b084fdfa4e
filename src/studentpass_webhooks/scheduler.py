"""Retry scheduling for failed deliveries."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from .models import Delivery, RetryPolicy, utc_now
from .queue import DeliveryQueue

logger = logging.getLogger(__name__)


def compute_delay(policy: RetryPolicy, attempt: int) -> float:
    """Delay in seconds before retrying after failed attempt number ``attempt``.

    ``delays[min(attempt - 1, len(delays) - 1)] * backoff_multiplier ** (attempt - 1)``,
    capped at ``max_delay``. Non-decreasing in ``attempt`` when the delays
    are non-decreasing and ``backoff_multiplier >= 1``.
    """
    attempt = max(attempt, 1)
    base_delay = policy.delays[min(attempt - 1, len(policy.delays) - 1)]
    if base_delay == 0:
        return 0.0
    try:
        delay = base_delay * policy.backoff_multiplier ** (attempt - 1)
    except OverflowError:
        return policy.max_delay
    return min(delay, policy.max_delay)


class RetryScheduler:
    """Decides what happens to a ``failed`` delivery.

    A delivery is retried while ``attempt <= max_retries``, so it is sent at
    most ``max_retries + 1`` times in total.
    """

    def __init__(self, queue: DeliveryQueue) -> None:
        self._queue = queue

    def handle_failure(
        self,
        delivery: Delivery,
        *,
        retryable: bool = True,
        now: datetime | None = None,
    ) -> bool:
        """Schedule a retry or fail the delivery permanently.

        Args:
            delivery: Delivery in ``failed`` state.
            retryable: False forces a permanent failure.
            now: Reference time for ``retry_at``.

        Returns:
            True if a retry was scheduled.
        """
        policy = delivery.webhook.retry_policy

        if not retryable or delivery.attempt > policy.max_retries:
            delivery.mark_failed_permanently()
            logger.warning(
                "Webhook delivery failed permanently: %s to %s after %d attempt(s)",
                delivery.event.type,
                delivery.webhook.url,
                delivery.attempt,
            )
            return False

        delay = compute_delay(policy, delivery.attempt)
        retry_at = (now or utc_now()) + timedelta(seconds=delay)
        delivery.mark_retry_scheduled(retry_at)
        self._queue.hold(delivery)

        logger.info(
            "Webhook scheduled for retry: %s to %s (attempt %d failed, retry in %.2fs)",
            delivery.event.type,
            delivery.webhook.url,
            delivery.attempt,
            delay,
        )
        return True
