"""Global exception handlers — translate domain errors to HTTP responses.

Every failure uses the ``{"error": "...", "details": [...]}`` envelope;
``details`` is present only for validation errors.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from completion_gateway.domain.exceptions import (
    GatewayError,
    InternalError,
    ProviderError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_GENERIC_MESSAGE = "Internal server error"


def _error_json(
    status_code: int, message: str, details: list[dict[str, Any]] | None = None
) -> JSONResponse:
    content: dict[str, Any] = {"error": message}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def register_error_handlers(app: FastAPI) -> None:
    """Attach exception handlers to the FastAPI application."""

    # ── Domain exceptions ───────────────────────────────────────────────

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        logger.info("Rejected request: %s (%d issue(s))", exc.message, len(exc.details))
        return _error_json(exc.status_code, exc.message, exc.details)

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
        logger.warning(
            "Provider %s failed (upstream status %s, %s): %s",
            exc.provider or "unknown",
            exc.upstream_status,
            "retryable" if exc.retryable else "not retryable",
            exc.message,
        )
        return _error_json(exc.status_code, exc.message)

    @app.exception_handler(InternalError)
    async def internal_error_handler(request: Request, exc: InternalError) -> JSONResponse:
        return _error_json(500, exc.message or _GENERIC_MESSAGE)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        logger.warning("%s: %s", type(exc).__name__, exc)
        if exc.status_code >= 500:
            return _error_json(exc.status_code, _GENERIC_MESSAGE)
        return _error_json(exc.status_code, exc.message)

    # ── Pydantic / FastAPI validation errors ────────────────────────────

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = [
            {
                "field": ".".join(str(p) for p in err.get("loc", [])),
                "message": err.get("msg", "validation error"),
            }
            for err in exc.errors()
        ]
        return _error_json(400, "Invalid request format", details)

    # ── Catch-all for unexpected errors ─────────────────────────────────

    @app.exception_handler(Exception)
    async def generic_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception")
        return _error_json(500, _GENERIC_MESSAGE)
