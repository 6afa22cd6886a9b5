from __future__ import annotations

from collections.abc import Iterable, Mapping

from .config import ClientOptions, HeaderValue

USER_AGENT = "completions-client-python"
API_VERSION = "2023-06-01"

HeaderPairs = tuple[tuple[str, str], ...]


def override_headers(base: Iterable[tuple[str, str]], overrides: Mapping[str, HeaderValue] | None) -> HeaderPairs:
    """Replace headers key by key: drop every existing value for the key, then add the override."""
    pairs = list(base)
    if not overrides:
        return tuple(pairs)
    for key, value in overrides.items():
        lowered = key.lower()
        pairs = [(k, v) for k, v in pairs if k.lower() != lowered]
        if value is None:
            continue
        if isinstance(value, str):
            pairs.append((key, value))
        else:
            pairs.extend((key, v) for v in value)
    return tuple(pairs)


def default_headers(options: ClientOptions) -> HeaderPairs:
    pairs: list[tuple[str, str]] = [
        ("Accept", "application/json"),
        ("User-Agent", USER_AGENT),
        ("anthropic-version", API_VERSION),
    ]
    if options.api_key:
        pairs.append(("X-Api-Key", options.api_key))
    if options.auth_token:
        pairs.append(("Authorization", f"Bearer {options.auth_token}"))
    return override_headers(pairs, options.default_headers)
