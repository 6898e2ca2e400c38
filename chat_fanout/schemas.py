"""Pydantic schemas and result types for chat fan-out."""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import DEFAULT_MAX_INPUT_BYTES, DEFAULT_MAX_OUTPUT_TOKENS, StreamStatus
from .errors import ConfigurationError
from .model_registry import ProviderFamily


@dataclass(frozen=True)
class ApiKeys:
    openai: str
    anthropic: str | None = None
    gemini: str | None = None
    perplexity: str | None = None

    def for_family(self, family: ProviderFamily) -> str:
        credential = getattr(self, family.value)
        if not credential:
            raise ConfigurationError(f"No API key configured for provider: {family.value}")
        return credential


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str = Field(min_length=1)
    content: str


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    models: list[str] = Field(min_length=1)
    messages: list[Message] | dict[str, list[Message]]
    max_input_bytes: int = Field(default=DEFAULT_MAX_INPUT_BYTES, alias="maxInput", gt=0)
    max_output_tokens: int = Field(default=DEFAULT_MAX_OUTPUT_TOKENS, alias="maxOutput", gt=0)
    moderation_enabled: bool = Field(default=False, alias="moderationEnabled")

    @field_validator("models")
    @classmethod
    def validate_models(cls, models: list[str]) -> list[str]:
        if any(not model for model in models):
            raise ValueError("Model identifiers must be non-empty strings")
        return models

    @property
    def has_model_specific_messages(self) -> bool:
        return isinstance(self.messages, Mapping)


@dataclass(frozen=True)
class ChatSuccess:
    text: str


@dataclass(frozen=True)
class ChatFailure:
    error: str


ChatOutcome = ChatSuccess | ChatFailure
AggregatedResult = dict[str, ChatOutcome]


class ModelMetadata(BaseModel):
    id: str
    provider: ProviderFamily


class OutcomeError(BaseModel):
    error: str


class ChatResponse(BaseModel):
    results: dict[str, str | OutcomeError]

    @classmethod
    def from_result(cls, result: AggregatedResult) -> "ChatResponse":
        return cls(
            results={
                model: (
                    outcome.text
                    if isinstance(outcome, ChatSuccess)
                    else OutcomeError(error=outcome.error)
                )
                for model, outcome in result.items()
            }
        )


class StreamEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str
    status: StreamStatus
    data: str | None = None
    error: str | None = None
    timestamp: str

    @classmethod
    def from_outcome(cls, model: str, outcome: ChatOutcome) -> "StreamEvent":
        timestamp = datetime.now(timezone.utc).isoformat()
        if isinstance(outcome, ChatSuccess):
            return cls(model=model, status="success", data=outcome.text, timestamp=timestamp)
        return cls(model=model, status="error", error=outcome.error, timestamp=timestamp)

    def to_payload(self) -> dict[str, str]:
        return self.model_dump(exclude_none=True)
