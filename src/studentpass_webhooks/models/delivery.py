"""Delivery model: one event sent to one webhook, across all its attempts.

State machine:

    queued ----------> delivering --> delivered
       |                   |
       |                   v
       |                 failed --> retry-scheduled --> delivering (loop)
       |                   |              |
       v                   v              v
    failed-permanently <---+--------------+

``delivered`` and ``failed-permanently`` are terminal. The edges from
``queued`` and ``retry-scheduled`` straight to ``failed-permanently`` are
taken only when a delivery is abandoned before a send: its webhook was
removed or disabled, or a bounded queue refused it.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import InvalidTransitionError
from .base import generate_id, utc_now
from .event import Event
from .webhook import Webhook

if TYPE_CHECKING:
    from ..exceptions import DeliveryError

DeliveryStatus = Literal[
    "queued",
    "delivering",
    "delivered",
    "failed",
    "retry-scheduled",
    "failed-permanently",
]

TRANSITIONS: dict[str, frozenset[str]] = {
    "queued": frozenset({"delivering", "failed-permanently"}),
    "delivering": frozenset({"delivered", "failed"}),
    "failed": frozenset({"retry-scheduled", "failed-permanently"}),
    "retry-scheduled": frozenset({"delivering", "failed-permanently"}),
    "delivered": frozenset(),
    "failed-permanently": frozenset(),
}

TERMINAL_STATUSES: frozenset[str] = frozenset({"delivered", "failed-permanently"})


class DeliveryResponse(BaseModel):
    """Response received from a successful send."""

    model_config = ConfigDict(extra="forbid")

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None
    response_time_ms: float = Field(ge=0.0)


class DeliveryErrorInfo(BaseModel):
    """Details of the most recent failed send."""

    model_config = ConfigDict(extra="forbid")

    message: str
    code: str
    response_status: int | None = None
    response_body: str | None = None


class Delivery(BaseModel):
    """One event delivered to one webhook.

    Attributes:
        id: Unique delivery identifier.
        webhook_id: Target webhook ID.
        webhook: Webhook configuration used for the current attempt.
        event: Event being delivered.
        attempt: Sends made so far (0 until the first send).
        status: Current state.
        queued_at: When the delivery was created.
        delivered_at: When the latest send started.
        retry_at: When the next retry is due (only while ``retry-scheduled``).
        completed_at: When the delivery reached a terminal state.
        response: Response metadata from the successful send.
        error: Details of the latest failure.
        is_test: Whether this is a manual test delivery.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    webhook_id: str
    webhook: Webhook
    event: Event
    attempt: int = Field(default=0, ge=0)
    status: DeliveryStatus = "queued"
    queued_at: datetime = Field(default_factory=utc_now)
    delivered_at: datetime | None = None
    retry_at: datetime | None = None
    completed_at: datetime | None = None
    response: DeliveryResponse | None = None
    error: DeliveryErrorInfo | None = None
    is_test: bool = False

    @classmethod
    def for_event(cls, webhook: Webhook, event: Event, *, is_test: bool = False) -> Delivery:
        """Create a queued delivery of ``event`` to ``webhook``."""
        return cls(webhook_id=webhook.id, webhook=webhook, event=event, is_test=is_test)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, target: DeliveryStatus) -> Delivery:
        """Move to ``target``, enforcing the state machine.

        Raises:
            InvalidTransitionError: If ``target`` is not reachable from the
                current status.
        """
        if target not in TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.id, self.status, target)
        self.status = target
        if target != "retry-scheduled":
            self.retry_at = None
        if target in TERMINAL_STATUSES:
            self.completed_at = utc_now()
        return self

    def begin_attempt(self) -> Delivery:
        """Claim the delivery for a send: ``delivering``, next attempt number."""
        self.transition("delivering")
        self.attempt += 1
        self.delivered_at = utc_now()
        return self

    def mark_delivered(self, response: DeliveryResponse) -> Delivery:
        """Record a successful send."""
        self.transition("delivered")
        self.response = response
        self.error = None
        return self

    def mark_failed(self, error: DeliveryError) -> Delivery:
        """Record a failed send; the retry scheduler decides what follows."""
        self.transition("failed")
        self.error = DeliveryErrorInfo(
            message=error.message,
            code=error.code,
            response_status=error.response_status,
            response_body=error.response_body,
        )
        return self

    def mark_retry_scheduled(self, retry_at: datetime) -> Delivery:
        self.transition("retry-scheduled")
        self.retry_at = retry_at
        return self

    def mark_failed_permanently(self) -> Delivery:
        self.transition("failed-permanently")
        return self

    def abandon(self, code: str, message: str) -> Delivery:
        """Give up on a delivery that is waiting for a send."""
        self.transition("failed-permanently")
        self.error = DeliveryErrorInfo(message=message, code=code)
        return self


__all__ = [
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "Delivery",
    "DeliveryErrorInfo",
    "DeliveryResponse",
    "DeliveryStatus",
]
