"""Remembered OpenAI request shape per base URL.

OpenAI-compatible servers expose either the newer ``/responses`` API, the
legacy ``/chat/completions`` API, or both. Once a server has told us which
one works, later calls go straight to it instead of re-discovering it.

Reads are memory-first, then the durable store. Writes update memory
immediately and persist best-effort: a storage failure is logged and the
in-memory preference still applies for the life of the process.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Literal, get_args

if TYPE_CHECKING:
    from quill.storage import KeyValueStore

logger = logging.getLogger(__name__)

EndpointShape = Literal["responses", "chat"]

PREFERENCE_STORAGE_KEY = "openAiEndpointPreference"

_SHAPES: frozenset[str] = frozenset(get_args(EndpointShape))


class EndpointPreferenceStore:
    """Read-through / write-through cache of ``{base_url: shape}``."""

    def __init__(
        self,
        store: KeyValueStore | None = None,
        *,
        storage_key: str = PREFERENCE_STORAGE_KEY,
    ) -> None:
        self._store = store
        self._storage_key = storage_key
        self._memory: dict[str, EndpointShape] = {}

    def get(self, base_url: str) -> EndpointShape | None:
        """Return the remembered shape for *base_url*, if any."""
        if base_url in self._memory:
            return self._memory[base_url]

        value = self._read_persisted().get(base_url)
        if value in _SHAPES:
            self._memory[base_url] = value  # type: ignore[assignment]
            return value  # type: ignore[return-value]
        return None

    def remember(self, base_url: str, shape: EndpointShape) -> None:
        """Record *shape* as the working request shape for *base_url*."""
        if shape not in _SHAPES:
            raise ValueError(f"Unknown endpoint shape: {shape!r}")
        self._memory[base_url] = shape

        if self._store is None:
            return
        try:
            data = self._read_persisted()
            if data.get(base_url) == shape:
                return
            data[base_url] = shape
            self._store.set_item(self._storage_key, json.dumps(data))
        except Exception as e:
            logger.warning("Could not persist endpoint preference: %s", e)

    def _read_persisted(self) -> dict[str, str]:
        if self._store is None:
            return {}
        try:
            raw = self._store.get_item(self._storage_key)
        except Exception as e:
            logger.warning("Could not read endpoint preferences: %s", e)
            return {}
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        if not isinstance(parsed, dict):
            return {}
        return {k: v for k, v in parsed.items() if isinstance(v, str)}
