from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

HUMAN_PROMPT = "\n\nHuman:"
AI_PROMPT = "\n\nAssistant:"


def format_prompt(question: str) -> str:
    return f"{HUMAN_PROMPT} {question}{AI_PROMPT}"


class LanguageModel(str, Enum):
    CLAUDE_2 = "claude-2"
    CLAUDE_INSTANT_1 = "claude-instant-1"


class StopReason(str, Enum):
    STOP_SEQUENCE = "stop_sequence"
    MAX_TOKENS = "max_tokens"


class RequestMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Opaque external identifier (uuid or hash); never personal data.
    user_id: str | None = None


class CompletionRequestBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str
    model: LanguageModel = LanguageModel.CLAUDE_2
    max_tokens_to_sample: int = 2048
    stop_sequences: list[str] | None = None
    temperature: float = 1.0
    top_k: int | None = None
    top_p: float | None = None
    metadata: RequestMetadata | None = None

    @field_validator("prompt")
    @classmethod
    def _validate_prompt(cls, v: str) -> str:
        if not v:
            raise ValueError("prompt must be non-empty.")
        return v

    @field_validator("temperature")
    @classmethod
    def _validate_temperature(cls, v: float) -> float:
        if not (0.0 <= v <= 1.0):
            raise ValueError(f"{v}: is invalid value for temperature. Should be between 0 and 1.")
        return v

    @field_validator("top_p")
    @classmethod
    def _validate_top_p(cls, v: float | None) -> float | None:
        if v is None:
            return None
        if not (0.0 <= v <= 1.0):
            raise ValueError(f"{v}: is invalid value for top_p. Should be between 0 and 1.")
        return v

    @field_validator("max_tokens_to_sample")
    @classmethod
    def _validate_max_tokens(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("max_tokens_to_sample must be > 0.")
        return v

    def with_user_id(self, user_id: str) -> "CompletionRequestBase":
        return self.model_copy(update={"metadata": RequestMetadata(user_id=user_id)})

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class CompletionRequest(CompletionRequestBase):
    stream: Literal[False] = False


class StreamingCompletionRequest(CompletionRequestBase):
    stream: Literal[True] = True


class TokenUsage(BaseModel):
    prompt_tokens: int
    completion_tokens: int


class CompletionResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    completion: str = ""
    stop_reason: StopReason | None = None
    stop: str | None = None
    model: str | None = None
    usage: TokenUsage | None = None


class ServiceError(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    message: str | None = None


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    error: ServiceError
