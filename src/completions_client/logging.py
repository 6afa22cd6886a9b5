from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping, MutableMapping
from typing import TYPE_CHECKING, Any, TypeAlias, cast

import structlog

if TYPE_CHECKING:
    from .config import ClientOptions


_SENSITIVE_KEYS = {
    "authorization",
    "proxy-authorization",
    "x-api-key",
    "api_key",
    "auth_token",
    "token",
    "secret",
    "password",
}

_BEARER_RE = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9._~+/=-]{6,})")

ProcessorReturn: TypeAlias = Mapping[str, Any] | str | bytes | bytearray | tuple[Any, ...]
Processor: TypeAlias = Callable[[Any, str, MutableMapping[str, Any]], ProcessorReturn]


def _is_sensitive(key: Any) -> bool:
    name = str(key).lower()
    return name in _SENSITIVE_KEYS or any(s in name for s in ("api-key", "api_key", "token", "secret", "password"))


def redact(value: Any, *, secrets: list[str]) -> Any:
    """Mask credentials in log values: known secret strings, bearer tokens and sensitive keys or header pairs."""
    if isinstance(value, str):
        for secret in secrets:
            if secret in value:
                value = value.replace(secret, "[REDACTED]")
        return _BEARER_RE.sub("Bearer [REDACTED]", value)
    if isinstance(value, Mapping):
        return {k: "[REDACTED]" if _is_sensitive(k) else redact(v, secrets=secrets) for k, v in value.items()}
    if isinstance(value, tuple) and len(value) == 2 and isinstance(value[0], str) and _is_sensitive(value[0]):
        # (name, value) header pair
        return (value[0], "[REDACTED]")
    if isinstance(value, (list, tuple)):
        return type(value)(redact(v, secrets=secrets) for v in value)
    return value


def _make_redaction_processor(*, secrets: list[str]) -> Processor:
    secrets_norm = [s for s in secrets if isinstance(s, str) and s]

    def _processor(_logger: Any, _method_name: str, event_dict: MutableMapping[str, Any]) -> ProcessorReturn:
        return cast(dict[str, Any], redact(dict(event_dict), secrets=secrets_norm))

    return _processor


def configure_logging(level: str = "INFO", fmt: str = "json", *, secrets: list[str] | None = None) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level)

    processors: list[Processor] = [
        cast(Processor, structlog.contextvars.merge_contextvars),
        cast(Processor, structlog.processors.add_log_level),
        cast(Processor, structlog.processors.TimeStamper(fmt="iso")),
        _make_redaction_processor(secrets=secrets or []),
    ]

    if fmt == "json":
        processors.append(cast(Processor, structlog.processors.JSONRenderer()))
    else:
        processors.append(cast(Processor, structlog.dev.ConsoleRenderer()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )


def configure_logging_for(options: ClientOptions) -> None:
    configure_logging(level=options.log_level, fmt=options.log_format, secrets=options.secrets())
