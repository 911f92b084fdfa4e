"""Delivery queue and retry holding area.

The active queue is an ``asyncio.Queue``: consumers block on ``get`` and a
delivery is removed from the queue before it is sent, so no delivery is ever
handed to two consumers. Scheduled retries wait in a heap keyed by
``retry_at`` until the retry driver promotes them back into the active queue.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from datetime import datetime

from .models import Delivery, utc_now


class DeliveryQueue:
    """Active FIFO queue plus a ``retry_at``-ordered holding area.

    Args:
        maxsize: Bound on the active queue; 0 means unbounded.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._active: asyncio.Queue[Delivery] = asyncio.Queue(maxsize=maxsize)
        self._retries: list[tuple[datetime, int, Delivery]] = []
        self._sequence = itertools.count()
        self._retry_added = asyncio.Event()

    @property
    def maxsize(self) -> int:
        return self._active.maxsize

    @property
    def depth(self) -> int:
        """Deliveries waiting in the active queue."""
        return self._active.qsize()

    @property
    def retry_depth(self) -> int:
        """Deliveries waiting in the retry holding area."""
        return len(self._retries)

    # Active queue

    def put(self, delivery: Delivery) -> bool:
        """Enqueue without waiting. Returns False if a bounded queue is full."""
        try:
            self._active.put_nowait(delivery)
        except asyncio.QueueFull:
            return False
        return True

    async def get(self) -> Delivery:
        """Wait for and claim the next delivery."""
        return await self._active.get()

    def get_nowait(self) -> Delivery | None:
        """Claim the next delivery, or None if the queue is empty."""
        try:
            return self._active.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def task_done(self) -> None:
        self._active.task_done()

    async def join(self) -> None:
        """Wait until every claimed delivery has been marked done."""
        await self._active.join()

    # Retry holding area

    def hold(self, delivery: Delivery) -> None:
        """Park a ``retry-scheduled`` delivery until its ``retry_at``."""
        if delivery.retry_at is None:
            raise ValueError(f"Delivery {delivery.id} has no retry_at")
        heapq.heappush(self._retries, (delivery.retry_at, next(self._sequence), delivery))
        self._retry_added.set()

    def next_retry_at(self) -> datetime | None:
        return self._retries[0][0] if self._retries else None

    def promote_ready(self, now: datetime | None = None) -> list[Delivery]:
        """Move every retry due at ``now`` into the active queue.

        Retries that do not fit into a full bounded queue stay in the
        holding area for the next pass.

        Returns:
            The promoted deliveries, earliest ``retry_at`` first.
        """
        now = now or utc_now()
        promoted: list[Delivery] = []
        while self._retries and self._retries[0][0] <= now:
            entry = heapq.heappop(self._retries)
            if not self.put(entry[2]):
                heapq.heappush(self._retries, entry)
                break
            promoted.append(entry[2])
        return promoted

    async def wait_for_retry(self, timeout: float) -> None:
        """Sleep up to ``timeout`` seconds, waking early when a retry is held."""
        try:
            await asyncio.wait_for(self._retry_added.wait(), timeout=timeout)
        except TimeoutError:
            pass
        finally:
            self._retry_added.clear()
