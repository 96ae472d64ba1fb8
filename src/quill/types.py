"""Shared type aliases and provider identity helpers."""

from __future__ import annotations

from typing import Literal, get_args

ProviderName = Literal["openai", "anthropic", "local", "gemini", "groq"]
#: Providers whose credentials Quill fetches itself.
KeyedProvider = Literal["openai", "anthropic", "gemini", "groq"]

KEYED_PROVIDERS: tuple[str, ...] = get_args(KeyedProvider)

PROVIDER_LABELS: dict[str, str] = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "local": "Local",
    "gemini": "Gemini",
    "groq": "Groq",
}


def provider_label(provider: str) -> str:
    """Human-facing provider name for messages ("openai" -> "OpenAI")."""
    return PROVIDER_LABELS.get(provider, provider[:1].upper() + provider[1:])
