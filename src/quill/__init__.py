"""Quill: provider orchestration for cleaning up dictated text.

Public API:
    - ReasoningService: Route a cleanup request to OpenAI, Gemini, Groq,
      Anthropic or a local model
    - run(): One-shot cleanup with an environment-configured service
    - ReasoningConfig / Settings: Per-call options and service configuration
    - KeyValueStore, MemoryStore, JsonFileStore: Durable preference storage
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from quill.config import ReasoningConfig, Settings
from quill.credentials import CallableKeyRetriever, EnvKeyRetriever, KeyRetriever
from quill.errors import (
    APIError,
    ApiKeyMissingError,
    ConcurrencyError,
    ConfigurationError,
    CredentialError,
    DelegationError,
    NoModelSelectedError,
    QuillError,
    RateLimitError,
    TransportError,
    UnsupportedProviderError,
    UpstreamEmptyResponse,
    UpstreamHttpError,
    UpstreamProtocolError,
    UpstreamTokenLimitExceeded,
)
from quill.registry import CloudModel, StaticModelRegistry
from quill.retry import RetryPolicy
from quill.service import ReasoningService
from quill.storage import JsonFileStore, KeyValueStore, MemoryStore
from quill.telemetry import MemoryReporter, Tracer

if TYPE_CHECKING:
    from collections.abc import Mapping

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("quill-reasoning")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("quill").addHandler(logging.NullHandler())


async def run(
    text: str,
    *,
    model: str,
    agent_name: str | None = None,
    config: ReasoningConfig | Mapping[str, Any] | None = None,
    settings: Settings | None = None,
) -> str:
    """Clean up *text* once, using API keys from the environment.

    Args:
        text: The dictated text.
        model: Reasoning model id, e.g. ``"gpt-5-mini"``.
        agent_name: Optional assistant name the user may address.
        config: Optional temperature / max-token overrides.
        settings: Service settings; defaults to ``Settings.from_env()``.

    Returns:
        The cleaned-up text.

    Example:
        cleaned = await run("um so the meeting is uh tuesday", model="gemini-2.5-flash")
    """
    async with ReasoningService(settings=settings or Settings.from_env()) as service:
        return await service.process(text, model, agent_name, config)


__all__ = [
    "APIError",
    "ApiKeyMissingError",
    "CallableKeyRetriever",
    "CloudModel",
    "ConcurrencyError",
    "ConfigurationError",
    "CredentialError",
    "DelegationError",
    "EnvKeyRetriever",
    "JsonFileStore",
    "KeyRetriever",
    "KeyValueStore",
    "MemoryReporter",
    "MemoryStore",
    "NoModelSelectedError",
    "QuillError",
    "RateLimitError",
    "ReasoningConfig",
    "ReasoningService",
    "RetryPolicy",
    "Settings",
    "StaticModelRegistry",
    "Tracer",
    "TransportError",
    "UnsupportedProviderError",
    "UpstreamEmptyResponse",
    "UpstreamHttpError",
    "UpstreamProtocolError",
    "UpstreamTokenLimitExceeded",
    "run",
]
