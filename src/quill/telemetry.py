"""Structured trace events for the reasoning path.

Every milestone (provider selection, dispatch, key retrieval, endpoint
fallback, success, failure) is emitted as a named event with keyword fields.
Events always go to the ``quill.trace`` logger at DEBUG; reporters receive
them too when installed. A failing reporter is logged and never breaks a call.
"""

from __future__ import annotations

from collections import deque
import logging
import os
from typing import Any, Protocol, runtime_checkable

log = logging.getLogger(__name__)
_trace_log = logging.getLogger("quill.trace")

# Evaluated once at import time, like the other QUILL_* toggles.
_TRACE_ENABLED = os.getenv("QUILL_TRACE") == "1"


@runtime_checkable
class TraceReporter(Protocol):
    """Duck-typed protocol for trace reporters."""

    def record_event(self, event: str, **fields: Any) -> None: ...  # noqa: D102


class Tracer:
    """Fan trace events out to the trace logger and any reporters."""

    __slots__ = ("reporters",)

    def __init__(self, *reporters: TraceReporter) -> None:
        self.reporters = reporters

    def event(self, name: str, **fields: Any) -> None:
        """Record one named event."""
        if not name or not isinstance(name, str):
            raise ValueError("Trace event name must be a non-empty string")

        if _trace_log.isEnabledFor(logging.DEBUG):
            _trace_log.debug("%s %s", name, fields)

        for reporter in self.reporters:
            try:
                reporter.record_event(name, **fields)
            except Exception as e:
                log.error(
                    "Trace reporter '%s' failed: %s",
                    type(reporter).__name__,
                    e,
                    exc_info=True,
                )


class MemoryReporter:
    """Reporter that keeps the most recent events in memory.

    Handy in tests and when debugging a live session:

        reporter = MemoryReporter()
        service = ReasoningService(..., tracer=Tracer(reporter))
        ...
        print(reporter.names())
    """

    def __init__(self, max_entries: int = 1000) -> None:
        self.max_entries = max_entries
        self.entries: deque[tuple[str, dict[str, Any]]] = deque(maxlen=max_entries)

    def record_event(self, event: str, **fields: Any) -> None:
        self.entries.append((event, fields))

    def names(self) -> list[str]:
        """Return event names in emission order."""
        return [name for name, _ in self.entries]

    def find(self, event: str) -> list[dict[str, Any]]:
        """Return the fields of every recorded *event*."""
        return [fields for name, fields in self.entries if name == event]

    def reset(self) -> None:
        """Clear all collected events (testing convenience)."""
        self.entries.clear()


def default_tracer() -> Tracer:
    """Return a tracer honoring the ``QUILL_TRACE=1`` toggle.

    When the toggle is set, an in-memory reporter is installed for convenience;
    otherwise events only reach the ``quill.trace`` logger.
    """
    if _TRACE_ENABLED:
        return Tracer(MemoryReporter())
    return Tracer()
