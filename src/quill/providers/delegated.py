"""Drivers for providers served over a delegated channel (Anthropic, Local)."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from quill.errors import DelegationError, QuillError
from quill.providers._schemas import parse_delegation_result
from quill.types import provider_label

if TYPE_CHECKING:
    from quill.channels import ReasoningChannel
    from quill.guard import InFlightGuard
    from quill.providers.models import ReasoningRequest
    from quill.telemetry import Tracer


class DelegatedDriver:
    """Hand the request to a ``ReasoningChannel`` and unwrap its envelope.

    These calls do not take the in-flight slot (the channel serializes its
    own work) but still refuse to start while a direct call holds it.
    """

    def __init__(
        self,
        provider: str,
        channel: ReasoningChannel | None,
        *,
        guard: InFlightGuard,
        tracer: Tracer,
    ) -> None:
        self.provider = provider
        self.channel = channel
        self.guard = guard
        self.tracer = tracer

    async def process(self, request: ReasoningRequest) -> str:
        tag = self.provider.upper()
        label = provider_label(self.provider)
        self.tracer.event(
            f"{tag}_START", model=request.model, agent_name=request.agent_name
        )
        self.guard.check()

        if self.channel is None:
            self.tracer.event(
                f"{tag}_UNAVAILABLE", reason="No delegated channel configured"
            )
            raise DelegationError(
                f"{label} reasoning is not available in this environment",
                hint=f"Pass a {label.lower()} channel to ReasoningService.",
                provider=self.provider,
                phase="delegate",
            )

        start = time.perf_counter()
        self.tracer.event(
            f"{tag}_IPC_CALL", model=request.model, text_length=len(request.text)
        )
        try:
            envelope = await self.channel.process(
                request.text, request.model, request.agent_name, request.config
            )
            text = parse_delegation_result(envelope, provider=self.provider)
        except asyncio.CancelledError:
            raise
        except QuillError as e:
            self.tracer.event(
                f"{tag}_ERROR",
                model=request.model,
                processing_time_ms=_elapsed_ms(start),
                error=str(e),
            )
            raise
        except Exception as e:
            self.tracer.event(
                f"{tag}_ERROR",
                model=request.model,
                processing_time_ms=_elapsed_ms(start),
                error=str(e),
            )
            raise DelegationError(
                str(e) or f"{label} reasoning failed",
                provider=self.provider,
                phase="delegate",
            ) from e

        self.tracer.event(
            f"{tag}_SUCCESS",
            model=request.model,
            processing_time_ms=_elapsed_ms(start),
            result_length=len(text),
        )
        return text


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
