from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from .models import ServiceError


class ClientError(Exception):
    """Base error for completion client failures."""

    def __init__(
        self,
        message: str = "",
        *,
        status_code: int | None = None,
        headers: httpx.Headers | None = None,
        error: ServiceError | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.headers = headers
        self.error = error


class ConfigurationError(ClientError):
    pass


class APIStatusError(ClientError):
    """The service answered with a non-success status."""

    def __init__(
        self,
        status_code: int,
        *,
        headers: httpx.Headers | None = None,
        error: ServiceError | None = None,
        body: str | None = None,
    ):
        if error is not None and error.message:
            message = error.message
        elif body:
            message = body
        else:
            message = f"Upstream error {status_code}."
        super().__init__(message, status_code=status_code, headers=headers, error=error)
        self.body = body


class AuthenticationError(APIStatusError):
    pass


class RateLimitError(APIStatusError):
    def __init__(
        self,
        status_code: int = 429,
        *,
        retry_after_seconds: int | None = None,
        headers: httpx.Headers | None = None,
        error: ServiceError | None = None,
        body: str | None = None,
    ):
        super().__init__(status_code, headers=headers, error=error, body=body)
        self.retry_after_seconds = retry_after_seconds


class APIConnectionError(ClientError):
    def __init__(self, message: str = "Connection error."):
        super().__init__(message)


class APIConnectionTimeoutError(APIConnectionError):
    def __init__(self, message: str = "Request timed out."):
        super().__init__(message)


class RequestTimeoutError(ClientError):
    """The call deadline elapsed; the call was cancelled, not failed by the transport."""


class UpstreamProtocolError(ClientError):
    """Unexpected upstream response shape / contract mismatch."""


class StreamDecodeError(UpstreamProtocolError):
    """Malformed SSE framing or an unparsable completion chunk."""
