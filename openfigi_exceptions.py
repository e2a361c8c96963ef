"""
Custom exceptions for OpenFIGI API operations.

Call-level errors only. A per-job failure inside a batch response is data
(see openfigi_response.JobFailure), never one of these.
"""

from datetime import timedelta
from typing import Any, Optional


class OpenFIGIError(Exception):
    """Base exception for all OpenFIGI client errors."""

    pass


class ValidationError(OpenFIGIError):
    """Raised when a request field is missing, malformed or inconsistent."""

    def __init__(self, field: str, value: Any, message: Optional[str] = None):
        self.field = field
        self.value = value
        self.message = message or f"Invalid value for {field}: {value!r}"
        super().__init__(self.message)


class BatchError(OpenFIGIError):
    """Base for batch-shape errors detected before any network call."""

    pass


class EmptyBatch(BatchError):
    """Raised when a batch contains no jobs."""

    def __init__(self):
        super().__init__("Batch must contain at least one mapping job")


class BatchSizeExceeded(BatchError):
    """Raised when a batch holds more jobs than the active ceiling allows."""

    def __init__(self, limit: int, actual: int):
        self.limit = limit
        self.actual = actual
        super().__init__(
            f"Batch of {actual} jobs exceeds the limit of {limit} jobs per request"
        )


class TransportError(OpenFIGIError):
    """Raised when the exchange fails below HTTP (timeout, DNS, TLS, refused)."""

    KINDS = ("timeout", "connection", "tls", "request")

    def __init__(self, kind: str, message: str, url: Optional[str] = None):
        self.kind = kind
        self.url = url
        super().__init__(f"{kind} error: {message}")

    @property
    def is_timeout(self) -> bool:
        return self.kind == "timeout"

    @property
    def is_connect(self) -> bool:
        return self.kind == "connection"


class RateLimited(OpenFIGIError):
    """Raised when the service reports a rate-limit violation (HTTP 429)."""

    def __init__(
        self,
        scope: str,
        retry_after: Optional[timedelta] = None,
        remaining: Optional[int] = None,
        ceiling: Any = None,
        url: Optional[str] = None,
    ):
        self.scope = scope
        self.retry_after = retry_after
        self.remaining = remaining
        self.ceiling = ceiling
        self.url = url
        message = f"Rate limit exceeded for {scope}"
        if ceiling is not None:
            message += (
                f" (limit {ceiling.requests_per_window} requests per "
                f"{ceiling.window_seconds}s)"
            )
        if retry_after is not None:
            message += f"; retry after {retry_after.total_seconds():.0f}s"
        super().__init__(message)


class ApiError(OpenFIGIError):
    """Raised on a non-2xx response other than a rate-limit violation."""

    def __init__(self, status: int, message: str, body: str = "", url: Optional[str] = None):
        self.status = status
        self.body = body
        self.url = url
        self.message = message
        super().__init__(message)


class MalformedResponse(OpenFIGIError):
    """Raised when a response violates the documented shape."""

    def __init__(self, message: str, index: Optional[int] = None):
        self.index = index
        self.message = message
        if index is not None:
            message = f"Malformed response entry {index}: {message}"
        super().__init__(message)
