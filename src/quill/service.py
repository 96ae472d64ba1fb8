"""Orchestrator: route a cleanup request to the provider that serves its model."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime
import logging
import time
from typing import TYPE_CHECKING, Any, Self

import httpx

from quill.config import ReasoningConfig, Settings
from quill.credentials import CredentialCache, EnvKeyRetriever
from quill.errors import (
    APIError,
    ConfigurationError,
    NoModelSelectedError,
    UnsupportedProviderError,
)
from quill.guard import InFlightGuard
from quill.preferences import EndpointPreferenceStore
from quill.providers.base import DriverContext
from quill.providers.delegated import DelegatedDriver
from quill.providers.gemini import GeminiDriver
from quill.providers.groq import GroqDriver
from quill.providers.models import ReasoningRequest
from quill.providers.openai import OpenAIDriver
from quill.registry import StaticModelRegistry
from quill.telemetry import default_tracer
from quill.types import KEYED_PROVIDERS

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from quill.channels import LocalAvailabilityProbe, ReasoningChannel
    from quill.credentials import KeyRetriever
    from quill.providers.base import ReasoningDriver
    from quill.registry import ModelRegistry
    from quill.storage import KeyValueStore
    from quill.telemetry import Tracer

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 100


def coerce_config(config: ReasoningConfig | Mapping[str, Any] | None) -> ReasoningConfig:
    """Accept a ReasoningConfig, a plain mapping from a UI layer, or None."""
    if config is None:
        return ReasoningConfig()
    if isinstance(config, ReasoningConfig):
        return config
    if isinstance(config, Mapping):
        max_tokens = config.get("max_tokens", config.get("maxTokens"))
        return ReasoningConfig(
            temperature=config.get("temperature"),
            max_tokens=max_tokens,
        )
    raise ConfigurationError(
        f"Unsupported config type: {type(config).__name__}",
        hint="Pass ReasoningConfig(...) or a dict with temperature/max_tokens.",
    )


class ReasoningService:
    """Public entry point for dictation cleanup.

    Owns the credential cache (and its sweep), the endpoint preference store,
    the in-flight guard and, unless one is injected, the HTTP client. Use it as
    an async context manager, or call ``aclose()`` during teardown.

    Example:
        async with ReasoningService(store=JsonFileStore(path)) as service:
            cleaned = await service.process("um so yeah lets ship it", "gpt-5-mini")
    """

    def __init__(
        self,
        *,
        key_retriever: KeyRetriever | None = None,
        registry: ModelRegistry | None = None,
        anthropic_channel: ReasoningChannel | None = None,
        local_channel: ReasoningChannel | None = None,
        local_probe: LocalAvailabilityProbe | None = None,
        store: KeyValueStore | None = None,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        tracer: Tracer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or Settings()
        self.tracer = tracer or default_tracer()
        self.registry = registry or StaticModelRegistry()
        self.store = store
        self.local_probe = local_probe
        self.credentials = CredentialCache(
            key_retriever or EnvKeyRetriever(),
            ttl_s=self.settings.key_ttl_s,
            cleanup_interval_s=self.settings.cleanup_interval_s,
            clock=clock,
            tracer=self.tracer,
        )
        self.preferences = EndpointPreferenceStore(store)
        self.guard = InFlightGuard()

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.request_timeout_s)
        )
        ctx = DriverContext(
            client=self._client,
            credentials=self.credentials,
            guard=self.guard,
            settings=self.settings,
            tracer=self.tracer,
        )
        self._drivers: dict[str, ReasoningDriver] = {
            "openai": OpenAIDriver(ctx, self.preferences, store),
            "anthropic": DelegatedDriver(
                "anthropic", anthropic_channel, guard=self.guard, tracer=self.tracer
            ),
            "local": DelegatedDriver(
                "local", local_channel, guard=self.guard, tracer=self.tracer
            ),
            "gemini": GeminiDriver(ctx),
            "groq": GroqDriver(ctx, self.registry),
        }
        self._stop_cleanup: Callable[[], None] | None = None
        self._closed = False

    @property
    def is_processing(self) -> bool:
        return self.guard.is_processing

    def start(self) -> None:
        """Start the credential sweep; must be called on a running event loop."""
        if self._closed:
            raise ConfigurationError(
                "ReasoningService is closed",
                hint="Create a new ReasoningService after aclose()/destroy().",
            )
        if self._stop_cleanup is None:
            self._stop_cleanup = self.credentials.start_auto_cleanup()

    async def process(
        self,
        text: str,
        model: str = "",
        agent_name: str | None = None,
        config: ReasoningConfig | Mapping[str, Any] | None = None,
    ) -> str:
        """Clean up *text* with the provider serving *model*.

        Raises:
            NoModelSelectedError: *model* is empty after trimming.
            UnsupportedProviderError: The registry cannot classify *model*.
            QuillError: Whatever the provider driver raised, unchanged.
        """
        trimmed_model = (model or "").strip()
        if not trimmed_model:
            raise NoModelSelectedError(
                "No reasoning model selected",
                hint="Choose a reasoning model in settings.",
            )
        reasoning_config = coerce_config(config)

        provider = self.registry.get_model_provider(trimmed_model)
        self.tracer.event(
            "PROVIDER_SELECTION",
            model=trimmed_model,
            provider=provider,
            agent_name=agent_name,
            has_config=config is not None,
            text_length=len(text),
            timestamp=datetime.now(UTC).isoformat(),
        )
        if provider is None or provider not in self._drivers:
            self.tracer.event(
                "PROVIDER_ERROR", provider=provider, model=trimmed_model,
                error="unsupported provider",
            )
            raise UnsupportedProviderError(
                f"Unsupported reasoning provider: {provider or trimmed_model}",
                model=trimmed_model,
                hint="Pick a model from the supported catalog.",
            )

        self.start()
        request = ReasoningRequest(
            text=text,
            model=trimmed_model,
            agent_name=agent_name,
            config=reasoning_config,
        )
        self.tracer.event("ROUTING_TO_PROVIDER", provider=provider, model=trimmed_model)
        start = time.perf_counter()
        try:
            result = await self._drivers[provider].process(request)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if isinstance(e, APIError) and e.provider is None:
                e.provider = provider
            self.tracer.event(
                "PROVIDER_ERROR",
                provider=provider,
                model=trimmed_model,
                error=str(e),
                error_type=type(e).__name__,
            )
            logger.warning("Reasoning via %s (%s) failed: %s", provider, trimmed_model, e)
            raise

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        self.tracer.event(
            "PROVIDER_SUCCESS",
            provider=provider,
            model=trimmed_model,
            processing_time_ms=elapsed_ms,
            result_length=len(result),
            result_preview=result[:_PREVIEW_CHARS]
            + ("..." if len(result) > _PREVIEW_CHARS else ""),
        )
        logger.debug("Reasoning via %s finished in %dms", provider, elapsed_ms)
        return result

    async def is_available(self) -> bool:
        """Return True when any provider has a key or local reasoning works."""
        retriever = self.credentials.retriever
        try:
            found: dict[str, bool] = {}
            for provider in KEYED_PROVIDERS:
                found[provider] = bool(await retriever.get_key(provider))
            local = False
            if self.local_probe is not None:
                local = bool(await self.local_probe.check_local_reasoning_available())
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.tracer.event(
                "API_KEY_CHECK_ERROR", error=str(e), error_type=type(e).__name__
            )
            return False

        self.tracer.event(
            "API_KEY_CHECK",
            **{f"has_{provider}": has_key for provider, has_key in found.items()},
            has_local=local,
        )
        return any(found.values()) or local

    def clear_api_key_cache(self, provider: str | None = None) -> None:
        """Evict one provider's cached key, or all of them.

        Call this when keys change in settings so the next call re-fetches.
        """
        if provider:
            self.credentials.delete(provider)
        else:
            self.credentials.clear()
        self.tracer.event("API_KEY_CACHE_CLEARED", provider=provider or "all")

    def destroy(self) -> None:
        """Stop the credential sweep. Safe to call more than once."""
        self._closed = True
        if self._stop_cleanup is not None:
            self._stop_cleanup()
            self._stop_cleanup = None

    async def aclose(self) -> None:
        """Stop the sweep and close the HTTP client if this service created it."""
        self.destroy()
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


__all__ = ["ReasoningService", "coerce_config"]
