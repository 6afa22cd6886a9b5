from __future__ import annotations

import httpx
import structlog
from pydantic import ValidationError

from .errors import APIConnectionError, APIStatusError, AuthenticationError, RateLimitError
from .models import ErrorResponse, ServiceError

log = structlog.get_logger()


def _retry_after_seconds(headers: httpx.Headers) -> int | None:
    retry_after = headers.get("retry-after")
    return int(retry_after) if retry_after and retry_after.isdigit() else None


def parse_service_error(body: str) -> ServiceError | None:
    try:
        return ErrorResponse.model_validate_json(body).error
    except ValidationError:
        return None


def error_for_response(status_code: int, headers: httpx.Headers, body: str) -> APIStatusError:
    error = parse_service_error(body) if body else None
    raw = None if error is not None else body
    if status_code in (401, 403):
        return AuthenticationError(status_code, headers=headers, error=error, body=raw)
    if status_code == 429:
        return RateLimitError(
            status_code,
            retry_after_seconds=_retry_after_seconds(headers),
            headers=headers,
            error=error,
            body=raw,
        )
    return APIStatusError(status_code, headers=headers, error=error, body=raw)


async def raise_for_status(response: httpx.Response) -> None:
    """
    Raise a typed APIStatusError for a non-2xx response.

    The body is read in full first. For a streamed response that read consumes
    the body, so the response is closed before raising.
    """
    if response.is_success:
        return
    try:
        await response.aread()
        body = response.text
    except httpx.DecodingError:
        # The status still classifies the failure.
        body = ""
    except (httpx.RequestError, httpx.StreamError) as e:
        raise APIConnectionError(f"Connection lost while reading the error body: {type(e).__name__}.") from e
    finally:
        await response.aclose()
    exc = error_for_response(response.status_code, response.headers, body)
    log.warning(
        "completion_request_failed",
        status_code=response.status_code,
        error_type=exc.error.type if exc.error else None,
        body=body[:500] if exc.error is None else None,
    )
    raise exc
