"""Recent delivery history per webhook.

Keeps the last ``size`` terminal deliveries of each webhook in memory for
inspection. Long-term delivery storage belongs to an external store.
"""

from __future__ import annotations

import threading
from collections import deque

from .models import Delivery


class DeliveryHistory:
    """Bounded, per-webhook log of finished deliveries.

    Args:
        size: Deliveries kept per webhook; 0 disables the log.
    """

    def __init__(self, size: int = 100) -> None:
        self._size = size
        self._records: dict[str, deque[Delivery]] = {}
        self._lock = threading.Lock()

    def record(self, delivery: Delivery) -> None:
        if self._size == 0:
            return
        with self._lock:
            records = self._records.setdefault(delivery.webhook_id, deque(maxlen=self._size))
            records.append(delivery)

    def for_webhook(self, webhook_id: str, limit: int = 100) -> list[Delivery]:
        """Most recent deliveries for a webhook, newest first."""
        with self._lock:
            records = list(self._records.get(webhook_id, ()))
        records.reverse()
        return records[: max(limit, 0)]

    def forget(self, webhook_id: str) -> None:
        with self._lock:
            self._records.pop(webhook_id, None)
