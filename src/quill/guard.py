"""Single-slot in-flight guard for direct provider calls.

At most one direct-HTTP provider call (OpenAI, Gemini, Groq) runs per
service instance. An overlapping call is rejected immediately rather than
queued. Check-and-set happens with no ``await`` in between, so it is atomic
on the event loop.
"""

from __future__ import annotations

from contextlib import contextmanager
import enum
from typing import TYPE_CHECKING

from quill.errors import ConcurrencyError

if TYPE_CHECKING:
    from collections.abc import Iterator

ALREADY_PROCESSING = "Already processing a request"


class GuardState(enum.Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"


class InFlightGuard:
    """State-tagged ``IDLE | IN_FLIGHT`` slot."""

    __slots__ = ("_holder", "_state")

    def __init__(self) -> None:
        self._state = GuardState.IDLE
        self._holder: str | None = None

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def is_processing(self) -> bool:
        return self._state is GuardState.IN_FLIGHT

    @property
    def holder(self) -> str | None:
        """Provider currently holding the slot, if any."""
        return self._holder

    def check(self) -> None:
        """Raise ConcurrencyError if a direct call is in flight."""
        if self._state is GuardState.IN_FLIGHT:
            raise ConcurrencyError(
                ALREADY_PROCESSING,
                hint=f"Wait for the pending {self._holder or 'provider'} call to finish.",
            )

    @contextmanager
    def hold(self, holder: str) -> Iterator[None]:
        """Take the slot for the duration of the block; always released."""
        self.check()
        self._state = GuardState.IN_FLIGHT
        self._holder = holder
        try:
            yield
        finally:
            self._state = GuardState.IDLE
            self._holder = None
