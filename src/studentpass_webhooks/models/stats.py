"""System-wide delivery statistics."""

from pydantic import BaseModel, ConfigDict, Field


class SystemStats(BaseModel):
    """Aggregate view over all webhooks and the delivery queues.

    Attributes:
        total_webhooks: Registered webhooks.
        active_webhooks: Webhooks with status ``active``.
        total_events: Sum of per-webhook ``total_events``.
        successful_deliveries: Sum of per-webhook successful sends.
        failed_deliveries: Sum of per-webhook failed sends.
        queued_deliveries: Deliveries waiting in the active queue.
        retry_queue_size: Deliveries waiting in the retry holding area.
        in_flight_deliveries: Sends currently in progress.
        average_response_time: Mean of per-webhook average response times (ms).
    """

    model_config = ConfigDict(extra="forbid")

    total_webhooks: int = Field(default=0, ge=0)
    active_webhooks: int = Field(default=0, ge=0)
    total_events: int = Field(default=0, ge=0)
    successful_deliveries: int = Field(default=0, ge=0)
    failed_deliveries: int = Field(default=0, ge=0)
    queued_deliveries: int = Field(default=0, ge=0)
    retry_queue_size: int = Field(default=0, ge=0)
    in_flight_deliveries: int = Field(default=0, ge=0)
    average_response_time: float = Field(default=0.0, ge=0.0)
