"""Custom exceptions for routegate."""

from typing import Optional


class GatewayException(Exception):
    """Base class for gateway exceptions with HTTP status code.

    All custom exceptions inherit from this class and define their
    specific status_code, error_code and the generic message feature code
    shows to end users.
    """
    status_code: int = 500
    error_code: str = "gateway_error"
    user_message: str = "Something went wrong. Please try again."

    def __init__(self, message: str = "Gateway error"):
        self.message = message
        super().__init__(message)


class InvalidRequestError(GatewayException):
    """Raised when a caller passes an unusable request.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400
    error_code = "invalid_request"
    user_message = "The request could not be processed."


class QuotaExceededError(GatewayException):
    """Raised when an endpoint class has used up its daily or per-minute budget.

    Both budgets collapse into this one kind; ``reason`` tells them apart.
    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429
    error_code = "quota_exceeded"
    user_message = "Service is busy right now. Please try again later."

    def __init__(self, endpoint_class: str, reason: str):
        self.endpoint_class = endpoint_class
        self.reason = reason
        super().__init__(f"{endpoint_class} quota exceeded: {reason}")


class ProviderFailureError(GatewayException):
    """Raised when an upstream provider call fails.

    Covers network errors, timeouts, non-2xx responses and payloads that
    cannot be parsed. When both the primary and the fallback failed,
    ``fallback_error`` holds the second failure.

    Maps to HTTP 502 Bad Gateway.
    """
    status_code = 502
    error_code = "provider_failure"
    user_message = "There was a network issue. Please check your connection and try again."

    def __init__(
        self,
        message: str,
        endpoint_class: Optional[str] = None,
        provider: Optional[str] = None,
        upstream_status: Optional[int] = None,
        fallback_error: Optional["ProviderFailureError"] = None,
    ):
        self.endpoint_class = endpoint_class
        self.provider = provider
        self.upstream_status = upstream_status
        self.fallback_error = fallback_error
        super().__init__(message)


class NoFallbackAvailableError(GatewayException):
    """Marker for failures on an endpoint class without a fallback provider.

    Maps to HTTP 503 Service Unavailable when raised on its own.
    """
    status_code = 503
    error_code = "no_fallback_available"
    user_message = "Service is busy right now. Please try again later."


class QuotaExceededNoFallbackError(QuotaExceededError, NoFallbackAvailableError):
    """Quota exhausted on a class that has nowhere else to go."""


class ProviderFailureNoFallbackError(ProviderFailureError, NoFallbackAvailableError):
    """Primary failed on a class that has nowhere else to go."""
