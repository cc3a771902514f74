"""Shared helpers for adapters that talk to provider REST APIs through httpx."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator

import httpx

from completion_gateway.domain.exceptions import ProviderError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True, slots=True)
class GenerationDefaults:
    """Values used when a request leaves temperature / max tokens unset."""

    temperature: float = 0.7
    max_tokens: int = 1000


def friendly_status_message(provider: str, status: int, detail: str | None = None) -> str:
    """Turn an upstream HTTP status into a short, user-facing message."""
    if status == 401:
        base = f"Invalid {provider} API key. Please check your settings and try again."
    elif status == 403:
        base = f"Access denied by {provider}. Your API key may not have permission for this model."
    elif status == 404:
        base = f"{provider} could not find the requested model or endpoint."
    elif status == 429:
        base = f"{provider} rate limit exceeded. Please wait a moment before trying again."
    elif status >= 500:
        base = f"{provider} is temporarily unavailable (HTTP {status})."
    else:
        base = f"{provider} API error (HTTP {status})."
    return f"{base} {detail}" if detail else base


def error_from_response(provider: str, status: int, body: bytes | str) -> ProviderError:
    """Build a :class:`ProviderError` from a non-2xx provider response."""
    detail = _extract_error_detail(body)
    logger.warning("%s returned HTTP %d: %s", provider, status, detail or "<no detail>")
    return ProviderError(
        friendly_status_message(provider, status, detail),
        provider=provider,
        status_code=status,
        retryable=status in _RETRYABLE_STATUS,
    )


def network_error(provider: str, exc: httpx.HTTPError) -> ProviderError:
    return ProviderError(
        f"Network error contacting {provider}: {exc}",
        provider=provider,
        status_code=None,
        retryable=True,
    )


async def post_json(
    client: httpx.AsyncClient,
    provider: str,
    url: str,
    *,
    headers: dict[str, str],
    payload: dict[str, Any],
) -> dict[str, Any]:
    """POST *payload* and return the decoded JSON body, translating failures."""
    try:
        resp = await client.post(url, headers=headers, json=payload)
    except httpx.HTTPError as exc:
        raise network_error(provider, exc) from exc
    return _json_body(provider, resp)


async def get_json(
    client: httpx.AsyncClient,
    provider: str,
    url: str,
    *,
    headers: dict[str, str],
    params: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """GET *url* and return the decoded JSON body, translating failures."""
    try:
        resp = await client.get(url, headers=headers, params=params)
    except httpx.HTTPError as exc:
        raise network_error(provider, exc) from exc
    return _json_body(provider, resp)


def _json_body(provider: str, resp: httpx.Response) -> dict[str, Any]:
    if resp.status_code != 200:
        raise error_from_response(provider, resp.status_code, resp.content)

    try:
        data: dict[str, Any] = resp.json()
    except ValueError as exc:
        raise ProviderError(
            f"{provider} returned a malformed response.", provider=provider, status_code=502
        ) from exc
    return data


async def stream_sse_json(
    client: httpx.AsyncClient,
    provider: str,
    url: str,
    *,
    headers: dict[str, str],
    payload: dict[str, Any],
) -> AsyncIterator[dict[str, Any]]:
    """POST *payload* and yield each ``data:`` event of the SSE response as JSON.

    Non-JSON data lines (including ``[DONE]``) are skipped.  The HTTP
    response is closed as soon as the consumer stops iterating.
    """
    try:
        async with client.stream("POST", url, headers=headers, json=payload) as resp:
            if resp.status_code != 200:
                body = await resp.aread()
                raise error_from_response(provider, resp.status_code, body)

            async for line in resp.aiter_lines():
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if not data or data == "[DONE]":
                    continue
                try:
                    event = json.loads(data)
                except ValueError:
                    logger.debug("Skipping unparsable %s SSE line: %.200s", provider, data)
                    continue
                if isinstance(event, dict):
                    yield event
    except httpx.HTTPError as exc:
        raise network_error(provider, exc) from exc


def _extract_error_detail(body: bytes | str) -> str | None:
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    body = body.strip()
    if not body:
        return None
    try:
        data = json.loads(body)
    except ValueError:
        return body[:200]

    # {"error": {"message": ...}} (OpenAI, Anthropic, Gemini) or {"error": "..."}
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str):
            return err
        if data.get("message"):
            return str(data["message"])
    return None
