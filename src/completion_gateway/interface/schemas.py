"""Pydantic response DTOs for the API boundary.

The completion request itself is validated by the request normalizer, not
by a FastAPI body model, so that every violation is reported at once.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ModelSummary(_CamelModel):
    """One catalog entry shown to clients."""

    id: str
    name: str
    provider: str
    context_length: int = Field(alias="contextLength")
    input_cost: float = Field(alias="inputCost")
    output_cost: float = Field(alias="outputCost")
    is_free: bool = Field(alias="isFree")


class ProviderSummary(_CamelModel):
    """A configured provider and the models it is known to serve."""

    id: str
    credential_header: str = Field(alias="credentialHeader")
    models: list[ModelSummary]


class ProviderListResponse(BaseModel):
    """Response from ``GET /api/providers``."""

    providers: list[ProviderSummary]


class ModelListResponse(BaseModel):
    """Response from ``GET /api/models``.

    ``source`` is ``live`` when the backend answered, ``catalog`` when the
    static list was used instead.
    """

    provider: str
    source: str
    models: list[ModelSummary]


class ChatStatusResponse(_CamelModel):
    """Response from ``GET /api/chat``."""

    message: str
    supported_providers: list[str] = Field(alias="supportedProviders")


class ErrorResponse(BaseModel):
    """Standard error envelope returned on all failure paths."""

    error: str
    details: Optional[list[dict[str, Any]]] = None
