from .client import CompletionClient
from .config import ClientOptions, RequestOptions
from .errors import (
    APIConnectionError,
    APIConnectionTimeoutError,
    APIStatusError,
    AuthenticationError,
    ClientError,
    ConfigurationError,
    RateLimitError,
    RequestTimeoutError,
    StreamDecodeError,
    UpstreamProtocolError,
)
from .models import (
    AI_PROMPT,
    HUMAN_PROMPT,
    CompletionRequest,
    CompletionResult,
    LanguageModel,
    RequestMetadata,
    ServiceError,
    StopReason,
    StreamingCompletionRequest,
    TokenUsage,
    format_prompt,
)
from .logging import configure_logging, configure_logging_for
from .streaming import CompletionStream, StreamFailure, iter_completions

__all__ = [
    "AI_PROMPT",
    "HUMAN_PROMPT",
    "APIConnectionError",
    "APIConnectionTimeoutError",
    "APIStatusError",
    "AuthenticationError",
    "ClientError",
    "ClientOptions",
    "CompletionClient",
    "CompletionRequest",
    "CompletionResult",
    "CompletionStream",
    "ConfigurationError",
    "LanguageModel",
    "RateLimitError",
    "RequestMetadata",
    "RequestOptions",
    "RequestTimeoutError",
    "ServiceError",
    "StopReason",
    "StreamDecodeError",
    "StreamFailure",
    "StreamingCompletionRequest",
    "TokenUsage",
    "UpstreamProtocolError",
    "configure_logging",
    "configure_logging_for",
    "format_prompt",
    "iter_completions",
]
