"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from completion_gateway.infrastructure.config import Settings, get_settings
from completion_gateway.interface.dependencies import build_http_client, build_registry
from completion_gateway.interface.error_handlers import register_error_handlers
from completion_gateway.interface.routes import router
from completion_gateway.services.dispatcher import ResponseDispatcher
from completion_gateway.services.provider_registry import ProviderRegistry

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    registry: ProviderRegistry | None = None,
) -> FastAPI:
    """Build and wire the FastAPI application.

    Pass *registry* to serve a pre-built set of adapters (tests use this to
    substitute fakes); otherwise the real adapters are built at startup
    around one shared HTTP client.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Manage startup / shutdown of shared resources."""
        http_client = None
        active = registry
        if active is None:
            http_client = build_http_client(settings)
            active = build_registry(settings, http_client)

        app.state.registry = active
        app.state.dispatcher = ResponseDispatcher(active, expose_errors=settings.debug)
        try:
            yield
        finally:
            if http_client is not None:
                await http_client.aclose()
            logger.info("Shut down")

    app = FastAPI(
        title="Completion Gateway",
        version="1.0.0",
        description=(
            "Accepts one normalized chat-completion request, dispatches it to "
            "OpenAI, Anthropic, Gemini or OpenRouter, and returns a single "
            "response or a live event stream."
        ),
        lifespan=_lifespan,
    )

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=False,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

    register_error_handlers(app)
    app.include_router(router)

    # ── Health check (simple liveness probe) ────────────────────────────

    @app.get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
