"""Domain entities — pure data structures with no external dependencies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Author of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ProviderId(str, Enum):
    """Backends the gateway can dispatch to."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


@dataclass(frozen=True, slots=True)
class Attachment:
    """A file sent alongside a message.  ``data`` is base64 and never decoded here."""

    id: str
    name: str
    mime_type: str
    size_bytes: int
    data: str

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")


@dataclass(frozen=True, slots=True)
class Message:
    """One turn of the conversation."""

    id: str
    role: Role
    content: str
    timestamp: int  # epoch milliseconds
    attachments: tuple[Attachment, ...] = ()


@dataclass(frozen=True, slots=True)
class CompletionRequest:
    """Provider-agnostic completion request produced by the normalizer."""

    messages: tuple[Message, ...]
    provider_id: ProviderId
    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    stream: bool = False


@dataclass(frozen=True, slots=True)
class StreamChunk:
    """One incremental unit of model output plus a completion flag."""

    id: str
    content: str
    done: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {"id": self.id, "content": self.content, "done": self.done}


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token accounting reported (or estimated) for one completion."""

    input: int = 0
    output: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output


@dataclass(frozen=True, slots=True)
class CompletionResult:
    """The fully-assembled answer of a one-shot completion."""

    id: str
    content: str
    model: str
    provider: ProviderId
    usage: TokenUsage | None = None
    cost: float | None = None
    finish_reason: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialise into the JSON success body returned to the caller."""
        payload: dict[str, Any] = {
            "id": self.id,
            "content": self.content,
            "model": self.model,
            "provider": self.provider.value,
        }
        if self.usage is not None:
            payload["tokens"] = {
                "input": self.usage.input,
                "output": self.usage.output,
                "total": self.usage.total,
            }
        if self.cost is not None:
            payload["cost"] = self.cost
        if self.finish_reason is not None:
            payload["finishReason"] = self.finish_reason
        return payload


@dataclass(frozen=True, slots=True)
class ModelInfo:
    """Catalog entry describing a model a provider is known to serve."""

    id: str
    name: str
    provider: ProviderId
    context_length: int
    input_cost: float = 0.0  # USD per 1K tokens
    output_cost: float = 0.0

    @property
    def is_free(self) -> bool:
        return self.input_cost == 0 and self.output_cost == 0
