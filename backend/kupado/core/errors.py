"""
Error taxonomy shared by services and routes.

Every error that should reach the client carries its HTTP status code so the
exception handler in ``kupado.main`` can render the JSON envelope without
knowing which service raised it.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for errors rendered as ``{"error": ...}`` responses."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context: Dict[str, Any] = context
        super().__init__(self.message)


class InvalidRequestError(AppError):
    """Missing or malformed client input. No external call has been made."""

    status_code = 400
    default_message = "Invalid request"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ProviderError(AppError):
    """Generation provider failed (HTTP error, timeout, unparseable output)."""

    status_code = 500
    default_message = "AI generation failed"

    def __init__(self, message: Optional[str] = None, provider: Optional[str] = None, **context: Any):
        super().__init__(message, **context)
        self.provider = provider


class ProviderOverloadedError(ProviderError):
    """Provider reported it is over capacity. Safe to retry later."""

    status_code = 503
    default_message = "AI is currently overloaded. Please try again in a moment."


class StoreError(AppError):
    status_code = 500
    default_message = "Database operation failed"


class StoreUnavailableError(StoreError):
    status_code = 503
    default_message = "Database connection not available"


class ConfigurationError(AppError):
    status_code = 500
    default_message = "Service is not configured"


class PaymentProviderError(AppError):
    status_code = 502
    default_message = "Payment provider request failed"
