"""Custom exceptions for the Cortex application."""


class CortexException(Exception):
    """Base exception for Cortex application."""

    pass


class ValidationError(CortexException):
    """Raised when validation fails."""

    pass


class NotFoundError(CortexException):
    """Raised when a resource is not found."""

    pass


class DatabaseError(CortexException):
    """Raised when a database operation fails."""

    pass


class ServiceError(CortexException):
    """Raised when a service operation fails."""

    pass


class ConfigurationError(CortexException):
    """Raised when configuration is invalid."""

    pass


class LLMError(ServiceError):
    """Raised when the generative model call fails or returns unusable output."""

    pass


class MessagingError(ServiceError):
    """Raised when an outbound message could not be delivered."""

    pass


class StepFailedError(CortexException):
    """Raised when a checkpointed pipeline step exhausts its attempts."""

    def __init__(self, step: str, attempts: int, last_error: str) -> None:
        super().__init__(f"Step '{step}' failed after {attempts} attempt(s): {last_error}")
        self.step = step
        self.attempts = attempts
        self.last_error = last_error
