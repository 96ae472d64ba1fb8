"""Driver protocol and the shared collaborators direct drivers need."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    import httpx

    from quill.config import Settings
    from quill.credentials import CredentialCache
    from quill.guard import InFlightGuard
    from quill.providers.models import ReasoningRequest
    from quill.telemetry import Tracer


@runtime_checkable
class ReasoningDriver(Protocol):
    """Minimal driver protocol: turn a request into cleaned-up text."""

    provider: str

    async def process(self, request: ReasoningRequest) -> str:
        """Return the provider's cleaned text, trimmed and non-empty."""
        ...


@dataclass(frozen=True)
class DriverContext:
    """Collaborators shared by the direct-HTTP drivers of one service."""

    client: httpx.AsyncClient
    credentials: CredentialCache
    guard: InFlightGuard
    settings: Settings
    tracer: Tracer
