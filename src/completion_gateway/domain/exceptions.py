"""Domain exception hierarchy.

Each exception maps to a specific HTTP status code at the interface layer.
Inner layers raise these; the outermost error-handler translates them.
"""

from __future__ import annotations

from typing import Any


class GatewayError(Exception):
    """Base exception for the entire application."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ── Request errors (caller fault) ───────────────────────────────────────────


class ValidationError(GatewayError):
    """The request body is malformed or out of range.

    ``details`` lists every violation found, each as
    ``{"field": "<dotted path>", "message": "<reason>"}``.
    """

    status_code = 400

    def __init__(
        self, message: str, details: list[dict[str, Any]] | None = None
    ) -> None:
        super().__init__(message)
        self.details = details or []


class MissingCredentialError(GatewayError):
    """No credential was supplied for the requested provider."""

    status_code = 400


class UnknownProviderError(GatewayError):
    """The provider id has no entry in the registry."""

    status_code = 400


# ── Upstream errors ─────────────────────────────────────────────────────────


class ProviderError(GatewayError):
    """Any error originating from an LLM backend.

    ``status_code`` carries the backend's HTTP status when one is known.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.upstream_status = status_code
        self.retryable = retryable
        self.status_code = (
            status_code if status_code is not None and 400 <= status_code < 600 else 500
        )


# ── Internal errors ─────────────────────────────────────────────────────────


class InternalError(GatewayError):
    """Anything unanticipated.  The message is safe to show to callers."""

    status_code = 500


class RegistryConfigurationError(GatewayError):
    """The provider registry does not cover every provider id (startup bug)."""


class ChannelClosedError(GatewayError):
    """A write was attempted on a closed or disconnected output channel."""
