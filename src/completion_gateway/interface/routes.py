"""API routes — thin controllers that delegate to the dispatcher."""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response

from completion_gateway.domain.entities import ModelInfo, ProviderId
from completion_gateway.domain.exceptions import MissingCredentialError, ValidationError
from completion_gateway.domain.value_objects import CREDENTIAL_HEADER_PREFIX, Credential
from completion_gateway.interface.dependencies import get_dispatcher, get_registry
from completion_gateway.interface.event_stream import EventStreamResponse
from completion_gateway.interface.schemas import (
    ChatStatusResponse,
    ErrorResponse,
    ModelListResponse,
    ModelSummary,
    ProviderListResponse,
    ProviderSummary,
)
from completion_gateway.services.dispatcher import ResponseDispatcher
from completion_gateway.services.model_catalog import discover_models, models_for
from completion_gateway.services.provider_registry import ProviderRegistry
from completion_gateway.services.stream_relay import StreamRelay

router = APIRouter(prefix="/api")


@router.post(
    "/chat",
    responses={
        200: {
            "description": "Completion result, or an event stream when `stream` is true",
            "content": {"text/event-stream": {}},
        },
        400: {"model": ErrorResponse, "description": "Invalid request or missing credential"},
        500: {"model": ErrorResponse, "description": "Provider or internal failure"},
    },
)
async def submit_completion(
    request: Request,
    dispatcher: ResponseDispatcher = Depends(get_dispatcher),
) -> Response:
    """Submit a completion request to the provider named in the body."""
    body = await _read_json(request)
    outcome = await dispatcher.submit(body, request.headers)
    if isinstance(outcome, StreamRelay):
        return EventStreamResponse(outcome)
    return JSONResponse(outcome.to_payload())


@router.get("/chat", response_model=ChatStatusResponse, response_model_by_alias=True)
async def chat_status(
    registry: ProviderRegistry = Depends(get_registry),
) -> ChatStatusResponse:
    return ChatStatusResponse(
        message="Chat API is running",
        supported_providers=registry.provider_ids(),
    )


@router.get("/providers", response_model=ProviderListResponse, response_model_by_alias=True)
async def list_providers(
    registry: ProviderRegistry = Depends(get_registry),
) -> ProviderListResponse:
    """Read-only listing of configured providers for client capability display."""
    providers = [
        ProviderSummary(
            id=provider_id,
            credential_header=f"{CREDENTIAL_HEADER_PREFIX}{provider_id}",
            models=[_model_summary(m) for m in models_for(ProviderId(provider_id))],
        )
        for provider_id in registry.provider_ids()
    ]
    return ProviderListResponse(providers=providers)


@router.get(
    "/models",
    response_model=ModelListResponse,
    response_model_by_alias=True,
    responses={400: {"model": ErrorResponse, "description": "Unknown provider or missing credential"}},
)
async def list_models(
    request: Request,
    provider: str = Query(..., description="Provider id, e.g. `openai`"),
    registry: ProviderRegistry = Depends(get_registry),
) -> ModelListResponse:
    """Models the caller's key can use, falling back to the static catalog."""
    adapter = registry.lookup(provider)
    provider_id = ProviderId(provider)
    credential = Credential.from_headers(request.headers, provider_id)
    if credential is None:
        raise MissingCredentialError(f"API key required for {provider}")

    listing = await discover_models(adapter, provider_id, credential)
    return ModelListResponse(
        provider=listing.provider.value,
        source=listing.source,
        models=[_model_summary(m) for m in listing.models],
    )


def _model_summary(model: ModelInfo) -> ModelSummary:
    return ModelSummary(
        id=model.id,
        name=model.name,
        provider=model.provider.value,
        context_length=model.context_length,
        input_cost=model.input_cost,
        output_cost=model.output_cost,
        is_free=model.is_free,
    )


async def _read_json(request: Request) -> object:
    raw = await request.body()
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise ValidationError(
            "Invalid request format",
            details=[{"field": "body", "message": "Request body is not valid JSON"}],
        ) from exc
