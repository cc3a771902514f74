"""Token and cost accounting for completions.

Uses ``tiktoken`` for token counting when a backend does not report usage,
and a static per-1K-token price table for cost estimates.
"""

from __future__ import annotations

import tiktoken

from completion_gateway.domain.entities import TokenUsage

# ── Constants ───────────────────────────────────────────────────────────────

_ENCODING_NAME = "cl100k_base"  # GPT-4 family; close enough for other vendors

# USD per 1K tokens: (input, output)
_PRICES: dict[str, tuple[float, float]] = {
    # OpenAI
    "gpt-4o": (0.0025, 0.01),
    "gpt-4o-mini": (0.00015, 0.0006),
    "gpt-4": (0.03, 0.06),
    "gpt-4-turbo": (0.01, 0.03),
    "gpt-3.5-turbo": (0.001, 0.002),
    # Anthropic
    "claude-3-5-sonnet-20241022": (0.003, 0.015),
    "claude-3-5-haiku-20241022": (0.001, 0.005),
    "claude-3-opus-20240229": (0.015, 0.075),
    "claude-3-haiku-20240307": (0.00025, 0.00125),
    # Gemini
    "gemini-1.5-pro": (0.00125, 0.005),
    "gemini-1.5-flash": (0.000075, 0.0003),
    "gemini-pro": (0.0005, 0.0015),
    # OpenRouter
    "openai/gpt-4": (0.03, 0.06),
    "openai/gpt-4-turbo": (0.01, 0.03),
    "openai/gpt-3.5-turbo": (0.001, 0.002),
    "anthropic/claude-3-5-sonnet": (0.003, 0.015),
    "anthropic/claude-3-opus": (0.015, 0.075),
    "meta-llama/llama-3.1-70b-instruct": (0.0009, 0.0009),
    "meta-llama/llama-3.1-8b-instruct": (0.0001, 0.0001),
    "mistralai/mistral-large": (0.008, 0.024),
    "mistralai/mistral-medium": (0.0027, 0.0081),
    "google/gemini-pro": (0.000125, 0.000375),
}
_DEFAULT_PRICE = (0.001, 0.002)


# ── Public helpers ──────────────────────────────────────────────────────────

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    global _encoder  # noqa: PLW0603
    if _encoder is None:
        _encoder = tiktoken.get_encoding(_ENCODING_NAME)
    return _encoder


def count_tokens(text: str) -> int:
    """Return the token count for *text* under cl100k_base."""
    if not text:
        return 0
    return len(_get_encoder().encode(text))


def estimate_usage(prompt: str, completion: str) -> TokenUsage:
    """Estimate usage for backends that do not report it."""
    return TokenUsage(input=count_tokens(prompt), output=count_tokens(completion))


def price_for(model: str) -> tuple[float, float]:
    """Return ``(input, output)`` USD per 1K tokens for *model*.

    Dated or suffixed ids (``gpt-4o-2024-08-06``) fall back to the longest
    known prefix; unknown models get a conservative default.
    """
    if model in _PRICES:
        return _PRICES[model]
    prefixes = [name for name in _PRICES if model.startswith(name)]
    if prefixes:
        return _PRICES[max(prefixes, key=len)]
    return _DEFAULT_PRICE


def calculate_cost(usage: TokenUsage, model: str) -> float:
    """Return the estimated USD cost of *usage* on *model*."""
    input_price, output_price = price_for(model)
    return (usage.input / 1000) * input_price + (usage.output / 1000) * output_price
