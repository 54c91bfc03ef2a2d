"""Custom exception hierarchy."""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails.

    ``status_code`` is None for transport failures that never produced a
    response; ``reason`` is the failure text reported by the collaborator.
    """
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        reason: Optional[str] = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error=original_error)
        self.status_code = status_code
        self.reason = reason if reason is not None else message


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class InvalidTransitionError(AppError):
    """Raised when a workflow receives an event its current state does not accept."""
    def __init__(self, component: str, state: str, event: str):
        super().__init__(f"{component} cannot handle '{event}' while {state}")
        self.component = component
        self.state = state
        self.event = event


class AuthenticationError(AppError):
    """Raised when the caller's credentials are missing or no longer valid."""
    pass


class RecordStoreError(AppError):
    """Raised when the record store rejects a query or write."""
    pass


class RecordNotFoundError(RecordStoreError):
    """Raised when a policy record does not exist for the owner."""
    pass


class DocumentStoreError(AppError):
    """Raised when a document upload, download or removal fails."""
    pass
