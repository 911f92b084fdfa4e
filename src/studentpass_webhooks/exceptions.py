"""Webhook engine exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from WebhookError for easy catching.
"""

from __future__ import annotations


class WebhookError(Exception):
    """Base exception for all webhook engine errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "webhook_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class InvalidConfigurationError(WebhookError):
    """Malformed webhook registration input.

    Raised synchronously from registration and update; a webhook that
    fails validation is never stored and never receives deliveries.

    Attributes:
        field: The configuration field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "invalid_configuration"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(WebhookError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "webhook").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class InvalidTransitionError(WebhookError):
    """A delivery was asked to move to a state its current state forbids."""

    code: str = "invalid_transition"

    def __init__(self, delivery_id: str, current: str, target: str) -> None:
        self.delivery_id = delivery_id
        self.current = current
        self.target = target
        super().__init__(f"Delivery {delivery_id} cannot move from {current} to {target}")


class DeliveryError(WebhookError):
    """A single send to a webhook endpoint failed.

    Delivery errors never reach the caller of ``emit``; they are recorded on
    the delivery and surfaced through stats and lifecycle notifications.

    Attributes:
        response_status: HTTP status code, if a response was received.
        response_body: Response body (truncated), if a response was received.
    """

    code: str = "delivery_error"
    retryable: bool = True

    def __init__(
        self,
        message: str,
        response_status: int | None = None,
        response_body: str | None = None,
    ) -> None:
        self.response_status = response_status
        self.response_body = response_body
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "response_status": self.response_status,
                "response_body": self.response_body,
            }
        }


class DeliveryNetworkError(DeliveryError):
    """Connection, DNS or protocol failure. Retryable within policy limits."""

    code: str = "network_error"


class DeliveryTimeoutError(DeliveryNetworkError):
    """The endpoint did not answer within the delivery timeout."""

    code: str = "timeout"


class DeliveryHTTPError(DeliveryError):
    """The endpoint answered with a non-2xx status. Retryable within policy limits."""

    code: str = "http_error"


class PayloadError(DeliveryError):
    """The event could not be serialized into a request body. Not retryable."""

    code: str = "payload_error"
    retryable: bool = False


class InvalidEventError(WebhookError):
    """An emitted event is malformed (e.g. missing its type)."""

    code: str = "invalid_event"


class PermanentFailureError(WebhookError):
    """Retries are exhausted; the delivery will not be attempted again.

    Attributes:
        delivery_id: ID of the failed delivery.
        attempts: Number of sends made.
        last_error: Error message from the final attempt.
    """

    code: str = "permanent_failure"

    def __init__(self, delivery_id: str, attempts: int, last_error: str | None) -> None:
        self.delivery_id = delivery_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Delivery {delivery_id} failed permanently after {attempts} attempt(s): "
            f"{last_error or 'unknown error'}"
        )
