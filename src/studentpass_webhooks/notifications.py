"""Typed lifecycle notifications.

Listeners subscribe to one ``NotificationKind`` and are called directly, in
subscription order, whenever the engine reaches that point in an event's or
delivery's life. Listeners run on the engine's event loop and must not block.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .exceptions import WebhookError
    from .models import Delivery, Event

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    EVENT_EMITTED = "event.emitted"
    DELIVERY_QUEUED = "delivery.queued"
    DELIVERY_SUCCEEDED = "delivery.succeeded"
    DELIVERY_ERROR = "delivery.error"
    DELIVERY_RETRY_SCHEDULED = "delivery.retry_scheduled"
    DELIVERY_FAILED_PERMANENTLY = "delivery.failed_permanently"


@dataclass(frozen=True)
class Notification:
    """What happened, to which event and delivery.

    Attributes:
        kind: Lifecycle point reached.
        event: Event involved.
        delivery: Delivery involved (None for ``event.emitted``).
        error: Failure cause for error and permanent-failure notifications.
    """

    kind: NotificationKind
    event: Event
    delivery: Delivery | None = None
    error: WebhookError | None = None


Listener = Callable[[Notification], None]


class LifecycleNotifier:
    """Registry of listeners indexed by notification kind."""

    def __init__(self) -> None:
        self._listeners: dict[NotificationKind, list[Listener]] = {}
        self._lock = threading.Lock()

    def subscribe(self, kind: NotificationKind | str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``kind``.

        Returns:
            A callable that removes the listener again.
        """
        kind = NotificationKind(kind)
        with self._lock:
            self._listeners.setdefault(kind, []).append(listener)

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(kind, [])
                if listener in listeners:
                    listeners.remove(listener)

        return unsubscribe

    def listener_count(self, kind: NotificationKind | str | None = None) -> int:
        with self._lock:
            if kind is None:
                return sum(len(listeners) for listeners in self._listeners.values())
            return len(self._listeners.get(NotificationKind(kind), []))

    def notify(self, notification: Notification) -> None:
        """Call every listener for the notification's kind.

        A listener that raises is logged and skipped; it never affects
        delivery or the other listeners.
        """
        with self._lock:
            listeners = list(self._listeners.get(notification.kind, []))

        for listener in listeners:
            try:
                listener(notification)
            except Exception:
                logger.exception(
                    "Lifecycle listener %r failed for %s", listener, notification.kind.value
                )
