"""Ports for work Quill delegates instead of doing over HTTP itself.

Anthropic and local-model reasoning run in a separate trusted process (the
desktop app's main process). Quill talks to it through ``ReasoningChannel``,
which returns a success/error envelope; the transport behind it is the
caller's business.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping

    from quill.config import ReasoningConfig


@runtime_checkable
class ReasoningChannel(Protocol):
    """Delegated reasoning capability.

    The envelope is ``{"success": True, "text": ...}`` or
    ``{"success": False, "error": ...}``.
    """

    async def process(
        self,
        text: str,
        model: str,
        agent_name: str | None,
        config: ReasoningConfig,
    ) -> Mapping[str, Any]:
        """Run reasoning remotely and return the result envelope."""
        ...


@runtime_checkable
class LocalAvailabilityProbe(Protocol):
    """Reports whether a local reasoning model is installed and runnable."""

    async def check_local_reasoning_available(self) -> bool:
        """Return True when local reasoning can serve requests."""
        ...
