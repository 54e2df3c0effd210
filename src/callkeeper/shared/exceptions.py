"""
Custom exceptions for the application.
"""

from uuid import UUID


class AppError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str, code: str = "APP_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(AppError):
    """Validation error."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "VALIDATION_ERROR")


class NotFoundError(AppError):
    """Generic not found error."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "NOT_FOUND")


class CallNotFoundError(NotFoundError):
    """Call record not found."""

    def __init__(self, call_id: UUID | str) -> None:
        super().__init__(f"Call not found: {call_id}")
        self.code = "CALL_NOT_FOUND"
        self.call_id = call_id


class InvalidStateTransitionError(AppError):
    """A call record was not in a state that allows the requested write."""

    def __init__(self, call_id: UUID | str, operation: str) -> None:
        super().__init__(
            f"Call {call_id} is not in a valid state for '{operation}'",
            "INVALID_STATE_TRANSITION",
        )
        self.call_id = call_id
        self.operation = operation


class NotificationDeliveryError(AppError):
    """The notification sink did not confirm delivery."""

    def __init__(self, message: str, destination: str | None = None) -> None:
        super().__init__(message, "NOTIFICATION_DELIVERY_FAILED")
        self.destination = destination
