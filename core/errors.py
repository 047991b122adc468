"""Error taxonomy for the processing pipeline.

Each exception carries a stable ``error_code`` so the orchestrator (and the
HTTP layer) can branch on the kind of failure instead of matching messages.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for pipeline domain errors."""

    error_code: str = "pipeline_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class DecodeError(PipelineError):
    """Model output could not be turned into structured data."""

    error_code = "decode_failed"

    def __init__(self, message: str, raw_text: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw_text = raw_text


class ResponseValidationError(DecodeError):
    """Well-formed JSON with the wrong shape."""

    error_code = "invalid_shape"


class AuthError(PipelineError):
    """The completion service rejected the credentials (HTTP 401)."""

    error_code = "unauthorized"


class NetworkError(PipelineError):
    """Transport failure, including explicit cancellation."""

    error_code = "network_error"
    cancelled: bool = False


class RequestCancelled(NetworkError):
    """The request was abandoned because its session token was signalled."""

    error_code = "cancelled"
    cancelled = True

    def __init__(self, message: str = "Request was cancelled") -> None:
        super().__init__(message)


class RateLimitOrServerError(PipelineError):
    error_code = "rate_limited"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GatewayError(PipelineError):
    """Any other non-success response from the completion service."""

    error_code = "gateway_error"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PreconditionError(PipelineError):
    """An operation was invoked without the state it requires."""

    error_code = "precondition_failed"
