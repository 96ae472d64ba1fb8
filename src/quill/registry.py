"""Model-name to provider lookup.

The desktop app owns the authoritative model catalog; Quill only consumes it
through ``ModelRegistry``. ``StaticModelRegistry`` is a small built-in
catalog used when no registry is injected.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable


@dataclass(frozen=True)
class CloudModel:
    """Catalog entry for one model."""

    id: str
    provider: str
    name: str | None = None
    #: Ask chat-template models to skip their thinking phase.
    disable_thinking: bool = False


@runtime_checkable
class ModelRegistry(Protocol):
    """Lookup capability for model metadata."""

    def get_model_provider(self, model: str) -> str | None:
        """Return the provider that serves *model*, or None if unknown."""
        ...

    def get_cloud_model(self, model: str) -> CloudModel | None:
        """Return the catalog entry for *model*, if any."""
        ...


DEFAULT_MODELS: tuple[CloudModel, ...] = (
    CloudModel("gpt-5", "openai", "GPT-5"),
    CloudModel("gpt-5-mini", "openai", "GPT-5 Mini"),
    CloudModel("gpt-5-nano", "openai", "GPT-5 Nano"),
    CloudModel("gpt-4.1", "openai", "GPT-4.1"),
    CloudModel("gpt-4.1-mini", "openai", "GPT-4.1 Mini"),
    CloudModel("gpt-4o-mini", "openai", "GPT-4o Mini"),
    CloudModel("claude-sonnet-4-5", "anthropic", "Claude Sonnet 4.5"),
    CloudModel("claude-haiku-4-5", "anthropic", "Claude Haiku 4.5"),
    CloudModel("claude-opus-4-1", "anthropic", "Claude Opus 4.1"),
    CloudModel("gemini-2.5-pro", "gemini", "Gemini 2.5 Pro"),
    CloudModel("gemini-2.5-flash", "gemini", "Gemini 2.5 Flash"),
    CloudModel("gemini-2.5-flash-lite", "gemini", "Gemini 2.5 Flash Lite"),
    CloudModel("llama-3.3-70b-versatile", "groq", "Llama 3.3 70B"),
    CloudModel("llama-3.1-8b-instant", "groq", "Llama 3.1 8B"),
    CloudModel("openai/gpt-oss-120b", "groq", "GPT-OSS 120B"),
    CloudModel("openai/gpt-oss-20b", "groq", "GPT-OSS 20B"),
    CloudModel("qwen/qwen3-32b", "groq", "Qwen3 32B", disable_thinking=True),
    CloudModel("moonshotai/kimi-k2-instruct", "groq", "Kimi K2"),
    CloudModel("qwen2.5-7b-instruct", "local", "Qwen2.5 7B Instruct"),
    CloudModel("llama-3.2-3b-instruct", "local", "Llama 3.2 3B Instruct"),
)

# Checked in order; first match wins. Only vendors with unambiguous naming.
_PREFIX_PROVIDERS: tuple[tuple[str, str], ...] = (
    ("gpt-", "openai"),
    ("chatgpt-", "openai"),
    ("o1", "openai"),
    ("o3", "openai"),
    ("o4", "openai"),
    ("claude-", "anthropic"),
    ("gemini-", "gemini"),
)


class StaticModelRegistry:
    """In-memory catalog with optional prefix inference for unlisted models."""

    def __init__(
        self, models: Iterable[CloudModel] = DEFAULT_MODELS, *, infer: bool = True
    ) -> None:
        self._models = {m.id: m for m in models}
        self.infer = infer

    def get_cloud_model(self, model: str) -> CloudModel | None:
        return self._models.get(model.strip())

    def get_model_provider(self, model: str) -> str | None:
        key = model.strip()
        entry = self._models.get(key)
        if entry is not None:
            return entry.provider
        if not self.infer:
            return None
        lowered = key.lower()
        for prefix, provider in _PREFIX_PROVIDERS:
            if lowered.startswith(prefix):
                return provider
        return None
