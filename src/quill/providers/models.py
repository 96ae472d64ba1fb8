"""Domain models for the provider transport layer."""

from __future__ import annotations

from dataclasses import dataclass, field

from quill.config import ReasoningConfig
from quill.preferences import EndpointShape


@dataclass(frozen=True)
class ReasoningRequest:
    """One cleanup request, created per call and discarded afterwards.

    ``text`` is used exactly as given (callers trim it); ``model`` is already
    trimmed and non-empty by the time a driver sees it.
    """

    text: str
    model: str
    agent_name: str | None = None
    config: ReasoningConfig = field(default_factory=ReasoningConfig)


@dataclass(frozen=True)
class EndpointCandidate:
    """One OpenAI endpoint to try, with the request shape it expects."""

    url: str
    shape: EndpointShape
