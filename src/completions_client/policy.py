from __future__ import annotations

from dataclasses import dataclass

import httpx

from .config import ClientOptions, RequestOptions
from .headers import HeaderPairs, default_headers, override_headers


@dataclass(frozen=True)
class ClientDefaults:
    timeout: float | None
    max_retries: int
    headers: HeaderPairs

    @classmethod
    def from_options(cls, options: ClientOptions) -> "ClientDefaults":
        return cls(timeout=options.timeout, max_retries=options.max_retries, headers=default_headers(options))


@dataclass(frozen=True)
class EffectivePolicy:
    """Resolved timeout, retry budget and headers for one call."""

    timeout: float | None
    max_retries: int
    headers: HeaderPairs

    def http_headers(self) -> httpx.Headers:
        return httpx.Headers(list(self.headers))


def compose_policy(defaults: ClientDefaults, overrides: RequestOptions | None = None) -> EffectivePolicy:
    if overrides is None:
        return EffectivePolicy(timeout=defaults.timeout, max_retries=defaults.max_retries, headers=defaults.headers)
    return EffectivePolicy(
        timeout=overrides.timeout if overrides.timeout is not None else defaults.timeout,
        max_retries=overrides.max_retries if overrides.max_retries is not None else defaults.max_retries,
        headers=override_headers(defaults.headers, overrides.headers),
    )
