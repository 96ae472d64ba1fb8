"""Bounded-lifetime cache of provider API keys.

Keys are fetched once per provider from an injected ``KeyRetriever`` and kept
in memory until they age past the TTL, are evicted explicitly, or the process
ends. Expired entries are removed by a periodic sweep that the owner starts
with ``start_auto_cleanup()`` and must stop during teardown.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import inspect
import logging
import os
import time
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from quill.config import DEFAULT_CLEANUP_INTERVAL_S, DEFAULT_KEY_TTL_S
from quill.errors import ApiKeyMissingError
from quill.telemetry import Tracer
from quill.types import provider_label

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)

# Provider-specific API key environment variable names
API_KEY_ENV_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "groq": "GROQ_API_KEY",
}


@runtime_checkable
class KeyRetriever(Protocol):
    """Source of truth for API keys (OS keychain, IPC bridge, env, ...)."""

    async def get_key(self, provider: str) -> str | None:
        """Return the key for *provider*, or None when not configured."""
        ...


class EnvKeyRetriever:
    """Resolve keys from ``OPENAI_API_KEY``-style environment variables."""

    def __init__(self, env_vars: Mapping[str, str] | None = None) -> None:
        self.env_vars = dict(env_vars or API_KEY_ENV_VARS)

    async def get_key(self, provider: str) -> str | None:
        env_var = self.env_vars.get(provider)
        if env_var is None:
            return None
        value = os.environ.get(env_var, "").strip()
        return value or None


class CallableKeyRetriever:
    """Adapt per-provider getter callables (sync or async) to ``KeyRetriever``."""

    def __init__(self, getters: Mapping[str, Callable[[], Any]]) -> None:
        self.getters = dict(getters)

    async def get_key(self, provider: str) -> str | None:
        getter = self.getters.get(provider)
        if getter is None:
            return None
        result = getter()
        if inspect.isawaitable(result):
            result = await result
        return result if isinstance(result, str) else None


@dataclass(frozen=True)
class CachedApiKey:
    """One cached key; replaced on re-fetch, never mutated."""

    provider: str
    value: str
    inserted_at: float

    def __repr__(self) -> str:
        return (
            f"CachedApiKey(provider={self.provider!r}, value='[REDACTED]', "
            f"inserted_at={self.inserted_at!r})"
        )


class CredentialCache:
    """Per-provider API key cache with TTL sweep and single-flight fetch."""

    def __init__(
        self,
        retriever: KeyRetriever,
        *,
        ttl_s: float = DEFAULT_KEY_TTL_S,
        cleanup_interval_s: float = DEFAULT_CLEANUP_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
        tracer: Tracer | None = None,
    ) -> None:
        self.retriever = retriever
        self.ttl_s = ttl_s
        self.cleanup_interval_s = cleanup_interval_s
        self._clock = clock
        self._tracer = tracer or Tracer()
        self._entries: dict[str, CachedApiKey] = {}
        self._inflight: dict[str, asyncio.Task[str | None]] = {}
        # Bumped on every eviction; a retrieval started before one never
        # writes its result back.
        self._epoch = 0
        self._cleanup_task: asyncio.Task[None] | None = None

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def cleanup_running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    def get(self, provider: str) -> str | None:
        """Return the cached key, or None when absent or past TTL."""
        entry = self._entries.get(provider)
        if entry is None:
            return None
        if self._is_expired(entry):
            del self._entries[provider]
            return None
        return entry.value

    def set(self, provider: str, value: str) -> None:
        self._entries[provider] = CachedApiKey(provider, value, self._clock())

    def delete(self, provider: str) -> None:
        self._epoch += 1
        self._entries.pop(provider, None)
        self._inflight.pop(provider, None)

    def clear(self) -> None:
        self._epoch += 1
        self._entries.clear()
        self._inflight.clear()

    async def fetch(self, provider: str) -> str:
        """Return the key for *provider*, retrieving it on a cache miss.

        Concurrent misses for the same provider share one retrieval.

        Raises:
            ApiKeyMissingError: The retriever returned nothing or raised.
        """
        tag = provider.upper()
        api_key = self.get(provider)
        self._tracer.event(
            f"{tag}_KEY_RETRIEVAL",
            provider=provider,
            from_cache=api_key is not None,
            cache_size=self.size,
        )

        if api_key is None:
            api_key = await self._retrieve_once(provider)

        if not api_key:
            message = f"{provider_label(provider)} API key not configured"
            self._tracer.event(f"{tag}_KEY_MISSING", provider=provider, error=message)
            env_var = API_KEY_ENV_VARS.get(provider)
            raise ApiKeyMissingError(
                message,
                provider=provider,
                hint=f"Configure a key in settings or set {env_var}." if env_var else None,
            )
        return api_key

    async def _retrieve_once(self, provider: str) -> str | None:
        # The retrieval runs as its own task so cancelling one waiter never
        # cancels it for the others.
        task = self._inflight.get(provider)
        if task is None:
            task = asyncio.get_running_loop().create_task(
                self._retrieve(provider, self._epoch),
                name=f"quill-key-{provider}",
            )
            self._inflight[provider] = task
            task.add_done_callback(lambda t: self._forget_inflight(provider, t))
        return await asyncio.shield(task)

    def _forget_inflight(self, provider: str, task: asyncio.Task[str | None]) -> None:
        if self._inflight.get(provider) is task:
            del self._inflight[provider]

    async def _retrieve(self, provider: str, epoch: int) -> str | None:
        tag = provider.upper()
        try:
            value = await self.retriever.get_key(provider)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # A broken retriever is reported as "no key"; the message is kept
            # in the trace for diagnosis.
            self._tracer.event(
                f"{tag}_KEY_FETCH_ERROR", provider=provider, error=str(e)
            )
            logger.debug("Key retrieval for %s failed", provider, exc_info=True)
            return None

        value = value.strip() if isinstance(value, str) else None
        self._tracer.event(
            f"{tag}_KEY_FETCHED",
            provider=provider,
            has_key=bool(value),
            key_length=len(value) if value else 0,
        )
        if value and epoch == self._epoch:
            self.set(provider, value)
        return value or None

    def sweep(self) -> int:
        """Run one cleanup cycle; return how many entries were evicted."""
        expired = [p for p, entry in self._entries.items() if self._is_expired(entry)]
        for provider in expired:
            del self._entries[provider]
        if expired:
            logger.debug("Evicted %d expired API key(s)", len(expired))
        return len(expired)

    def start_auto_cleanup(self) -> Callable[[], None]:
        """Start the periodic sweep on the running event loop.

        Returns a callable that stops the sweep; calling it more than once is
        harmless. Starting twice returns a stopper for the existing sweep.
        """
        if not self.cleanup_running:
            loop = asyncio.get_running_loop()
            self._cleanup_task = loop.create_task(
                self._cleanup_loop(), name="quill-credential-sweep"
            )
        task = self._cleanup_task

        def stop() -> None:
            if task is not None and not task.done():
                task.cancel()
            if self._cleanup_task is task:
                self._cleanup_task = None

        return stop

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_s)
            try:
                self.sweep()
            except Exception as e:  # pragma: no cover - sweep only touches a dict
                logger.warning("API key sweep failed: %s", e)

    def _is_expired(self, entry: CachedApiKey) -> bool:
        return self._clock() - entry.inserted_at >= self.ttl_s

