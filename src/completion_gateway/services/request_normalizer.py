"""Request normalizer — turns an arbitrary decoded JSON body into a CompletionRequest.

Validation is delegated to pydantic so that *every* violation is collected
in one pass; the resulting errors are flattened into ``ValidationError.details``.
Numbers and booleans must arrive as JSON numbers and booleans; numeric
strings are rejected rather than coerced.  Unknown fields are ignored.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from completion_gateway.domain.entities import (
    Attachment,
    CompletionRequest,
    Message,
    ProviderId,
    Role,
)
from completion_gateway.domain.exceptions import ValidationError

MAX_TOKENS_LIMIT = 4000

# ── Wire models ─────────────────────────────────────────────────────────────


class _AttachmentIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    mime_type: str = Field(validation_alias=AliasChoices("mimeType", "type"))
    size_bytes: int = Field(
        ge=0, strict=True, validation_alias=AliasChoices("sizeBytes", "size")
    )
    data: str


class _MessageIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: int = Field(strict=True)
    attachments: Optional[list[_AttachmentIn]] = None


class _CompletionRequestIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    messages: list[_MessageIn] = Field(min_length=1)
    provider_id: Literal["openai", "anthropic", "gemini", "openrouter"] = Field(
        validation_alias=AliasChoices("providerId", "provider")
    )
    model: str = Field(min_length=1)
    temperature: Optional[float] = Field(default=None, ge=0, le=2, strict=True)
    max_tokens: Optional[int] = Field(
        default=None,
        ge=1,
        le=MAX_TOKENS_LIMIT,
        strict=True,
        validation_alias=AliasChoices("maxTokens", "max_tokens"),
    )
    stream: Optional[bool] = Field(default=None, strict=True)

    @field_validator("model")
    @classmethod
    def _model_not_blank(cls, v: str) -> str:
        if not v.strip():
            msg = "model must not be blank"
            raise ValueError(msg)
        return v


# ── Public API ──────────────────────────────────────────────────────────────


def normalize(body: Any) -> CompletionRequest:
    """Validate *body* and return the canonical :class:`CompletionRequest`.

    Raises :class:`ValidationError` listing every offending field.
    """
    if not isinstance(body, dict):
        raise ValidationError(
            "Invalid request format",
            details=[{"field": "body", "message": "Request body must be a JSON object"}],
        )

    try:
        parsed = _CompletionRequestIn.model_validate(body)
    except pydantic.ValidationError as exc:
        raise ValidationError(
            "Invalid request format", details=_flatten_errors(exc)
        ) from exc

    return CompletionRequest(
        messages=tuple(_to_message(m) for m in parsed.messages),
        provider_id=ProviderId(parsed.provider_id),
        model=parsed.model,
        temperature=parsed.temperature,
        max_tokens=parsed.max_tokens,
        stream=bool(parsed.stream),
    )


# ── Helpers ─────────────────────────────────────────────────────────────────


def _to_message(m: _MessageIn) -> Message:
    return Message(
        id=m.id,
        role=Role(m.role),
        content=m.content,
        timestamp=m.timestamp,
        attachments=tuple(
            Attachment(
                id=a.id,
                name=a.name,
                mime_type=a.mime_type,
                size_bytes=a.size_bytes,
                data=a.data,
            )
            for a in (m.attachments or [])
        ),
    )


def _flatten_errors(exc: pydantic.ValidationError) -> list[dict[str, Any]]:
    details: list[dict[str, Any]] = []
    for err in exc.errors(include_url=False):
        loc = ".".join(str(p) for p in err.get("loc", ())) or "body"
        details.append(
            {
                "field": loc,
                "message": err.get("msg", "validation error"),
                "type": err.get("type", "value_error"),
            }
        )
    return details
