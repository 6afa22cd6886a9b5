from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from typing import Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import ConfigurationError

DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_TIMEOUT_SECONDS = 600.0
DEFAULT_MAX_RETRIES = 2

# A header override value: one value, several values, or None to drop the header.
HeaderValue = Union[str, Sequence[str], None]


_ENV_FIELDS = {
    "ANTHROPIC_API_KEY": "api_key",
    "ANTHROPIC_AUTH_TOKEN": "auth_token",
    "ANTHROPIC_BASE_URL": "base_url",
    "ANTHROPIC_TIMEOUT_SECONDS": "timeout",
    "ANTHROPIC_MAX_RETRIES": "max_retries",
    "LOG_LEVEL": "log_level",
    "LOG_FORMAT": "log_format",
}


class ClientOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_url: str = DEFAULT_BASE_URL
    # Seconds. Bounds a whole call, retries and backoff included.
    timeout: float | None = DEFAULT_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    default_headers: dict[str, HeaderValue] | None = None

    # Set one of these, not both. Neither sends unauthenticated requests.
    api_key: str | None = None
    auth_token: str | None = None

    http2: bool = False

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, v: str) -> str:
        if not v:
            raise ConfigurationError("base_url is null or empty.")
        try:
            url = httpx.URL(v)
        except httpx.InvalidURL as e:
            raise ConfigurationError(f"{v}: is not a valid absolute URL.") from e
        if url.scheme not in ("http", "https") or not url.host:
            raise ConfigurationError(f"{v}: is not a valid absolute URL.")
        return v

    @field_validator("timeout")
    @classmethod
    def _validate_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("timeout must be > 0.")
        return v

    @field_validator("max_retries")
    @classmethod
    def _validate_max_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_retries must be >= 0.")
        return v

    @model_validator(mode="after")
    def _validate_credentials(self) -> "ClientOptions":
        if self.api_key and self.auth_token:
            raise ConfigurationError("Only one of api_key or auth_token is expected. Found both.")
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "ClientOptions":
        env = os.environ if environ is None else environ
        # Raw strings; pydantic coerces and validates them. Empty means unset.
        values: dict = {field: env[name] for name, field in _ENV_FIELDS.items() if env.get(name)}
        values.update(overrides)
        return cls(**values)

    def secrets(self) -> list[str]:
        return [s for s in (self.api_key, self.auth_token) if s]


class RequestOptions(BaseModel):
    """Per-call overrides. Unset fields fall back to the client's options."""

    model_config = ConfigDict(frozen=True)

    headers: dict[str, HeaderValue] | None = None
    max_retries: int | None = Field(default=None, ge=0)
    timeout: float | None = Field(default=None, gt=0)
