"""OpenAI driver with Responses / Chat Completions negotiation.

OpenAI-compatible servers serve the newer ``/responses`` API, the legacy
``/chat/completions`` API, or both. The driver tries them in preference
order inside a single retry attempt:

1. A base URL that already ends in ``/responses`` or ``/chat/completions``
   pins that one shape.
2. Otherwise a remembered preference for the base URL pins that shape.
3. Otherwise ``responses`` is tried first, then ``chat``.

A 404/405 on ``responses`` records ``chat`` for the base URL and moves on to
the next candidate, recomputing the list when a pinned preference was just
rewritten; any other failure ends the attempt. Every success
records the shape that worked.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

from quill._http import UNSUPPORTED_ENDPOINT_STATUS_CODES
from quill.errors import UpstreamHttpError
from quill.prompts import build_messages
from quill.providers._schemas import extract_openai_text, parse_openai_payload
from quill.providers._transport import post_json
from quill.providers._urls import build_api_url, normalize_base_url
from quill.providers.models import EndpointCandidate
from quill.retry import retry_async

if TYPE_CHECKING:
    from quill.preferences import EndpointPreferenceStore, EndpointShape
    from quill.providers.base import DriverContext
    from quill.providers.models import ReasoningRequest
    from quill.storage import KeyValueStore
    from quill.telemetry import Tracer

logger = logging.getLogger(__name__)

#: Durable-store key holding the user's custom OpenAI-compatible base URL.
CUSTOM_BASE_URL_STORAGE_KEY = "cloudReasoningBaseUrl"

# Hosts served by other drivers; an OpenAI override pointing at them is a
# misconfiguration, not a custom endpoint.
KNOWN_NON_OPENAI_HOSTS: tuple[str, ...] = (
    "api.groq.com",
    "api.anthropic.com",
    "generativelanguage.googleapis.com",
)

_LOOPBACK_HOSTS: frozenset[str] = frozenset({"localhost", "127.0.0.1", "::1"})

_SHAPE_SUFFIXES: tuple[tuple[str, EndpointShape], ...] = (
    ("/responses", "responses"),
    ("/chat/completions", "chat"),
)


def resolve_openai_base_url(
    custom: str | None, *, default: str, tracer: Tracer | None = None
) -> str:
    """Return the base URL to use for OpenAI calls.

    A custom URL is accepted only over HTTPS (plain HTTP is allowed for
    loopback hosts) and never when it points at another provider's API; the
    built-in *default* is substituted otherwise.
    """
    normalized = normalize_base_url(custom)
    if not normalized:
        return default

    parsed = urlparse(normalized)
    host = (parsed.hostname or "").lower()

    def _reject(reason: str) -> str:
        if tracer is not None:
            tracer.event("OPENAI_BASE_REJECTED", reason=reason, attempted=normalized)
        logger.warning("Ignoring custom OpenAI base URL %s: %s", normalized, reason)
        return default

    if any(host == h or host.endswith("." + h) for h in KNOWN_NON_OPENAI_HOSTS):
        return _reject(
            "Custom URL is a known non-OpenAI provider, using default OpenAI endpoint"
        )

    if parsed.scheme == "https" and host:
        return normalized
    if parsed.scheme == "http" and host in _LOOPBACK_HOSTS:
        return normalized
    return _reject("Non-HTTPS endpoint rejected for security")


def openai_endpoint_candidates(
    base: str, preference: EndpointShape | None
) -> list[EndpointCandidate]:
    """Return the endpoints to try for *base*, most preferred first."""
    lowered = base.lower()
    for suffix, shape in _SHAPE_SUFFIXES:
        if lowered.endswith(suffix):
            return [EndpointCandidate(base, shape)]

    if preference == "chat":
        return [EndpointCandidate(build_api_url(base, "/chat/completions"), "chat")]
    if preference == "responses":
        return [EndpointCandidate(build_api_url(base, "/responses"), "responses")]

    return [
        EndpointCandidate(build_api_url(base, "/responses"), "responses"),
        EndpointCandidate(build_api_url(base, "/chat/completions"), "chat"),
    ]


def _is_legacy_model(model: str) -> bool:
    # GPT-4 and earlier accept temperature on chat; newer families reject it.
    return model.startswith(("gpt-4", "gpt-3"))


def build_openai_body(shape: EndpointShape, request: ReasoningRequest) -> dict[str, Any]:
    """Build the JSON body for one request shape."""
    messages = build_messages(request.text, request.agent_name)
    max_tokens = request.config.max_tokens
    body: dict[str, Any] = {"model": request.model}

    if shape == "responses":
        body["input"] = messages
        body["store"] = False
        if max_tokens is not None:
            body["max_output_tokens"] = max_tokens
        return body

    body["messages"] = messages
    legacy = _is_legacy_model(request.model)
    if legacy:
        body["temperature"] = request.config.effective_temperature
    if max_tokens is not None:
        body["max_tokens" if legacy else "max_completion_tokens"] = max_tokens
    return body


class OpenAIDriver:
    """Direct HTTP driver for OpenAI and OpenAI-compatible servers."""

    provider = "openai"

    def __init__(
        self,
        ctx: DriverContext,
        preferences: EndpointPreferenceStore,
        store: KeyValueStore | None = None,
    ) -> None:
        self.ctx = ctx
        self.preferences = preferences
        self.store = store

    def base_url(self) -> str:
        """Resolve the effective base URL (custom override or built-in)."""
        custom: str | None = None
        if self.store is not None:
            try:
                custom = self.store.get_item(CUSTOM_BASE_URL_STORAGE_KEY)
            except Exception as e:
                logger.warning("Could not read custom OpenAI base URL: %s", e)
        return resolve_openai_base_url(
            custom, default=self.ctx.settings.openai_base_url, tracer=self.ctx.tracer
        )

    def endpoint_candidates(self, base: str) -> list[EndpointCandidate]:
        return openai_endpoint_candidates(base, self.preferences.get(base))

    async def process(self, request: ReasoningRequest) -> str:
        tracer = self.ctx.tracer
        tracer.event("OPENAI_START", model=request.model, agent_name=request.agent_name)

        with self.ctx.guard.hold(self.provider):
            api_key = await self.ctx.credentials.fetch(self.provider)
            try:
                return await self._process(request, api_key)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                tracer.event(
                    "OPENAI_ERROR",
                    model=request.model,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

    async def _process(self, request: ReasoningRequest, api_key: str) -> str:
        tracer = self.ctx.tracer
        base = self.base_url()
        tracer.event(
            "OPENAI_ENDPOINTS",
            base=base,
            candidates=[c.url for c in self.endpoint_candidates(base)],
            preference=self.preferences.get(base),
        )

        payload = await retry_async(
            lambda: self._negotiate(base, api_key, request),
            policy=self.ctx.settings.retry,
        )
        parsed = parse_openai_payload(payload)
        tracer.event(
            "OPENAI_RAW_RESPONSE",
            model=request.model,
            format=parsed.format,
            output_types=[item.type for item in parsed.output or ()],
            choices_length=len(parsed.choices or ()),
        )

        text = extract_openai_text(parsed)
        tracer.event(
            "OPENAI_RESPONSE",
            model=request.model,
            response_length=len(text),
            tokens_used=(parsed.usage.total_tokens if parsed.usage else None) or 0,
            is_empty=not text,
        )
        if not text:
            # The one deliberate substitution: hand back the caller's text.
            tracer.event(
                "OPENAI_EMPTY_RESPONSE_FALLBACK",
                model=request.model,
                original_text_length=len(request.text),
            )
            return request.text
        return text

    async def _negotiate(
        self, base: str, api_key: str, request: ReasoningRequest
    ) -> Any:
        """One retry attempt: walk the candidates until one answers."""
        pending = self.endpoint_candidates(base)
        tried: set[str] = set()
        last_error: UpstreamHttpError | None = None

        while pending:
            candidate = pending.pop(0)
            tried.add(candidate.url)
            try:
                payload = await post_json(
                    self.ctx.client,
                    candidate.url,
                    provider=self.provider,
                    headers={"Authorization": f"Bearer {api_key}"},
                    body=build_openai_body(candidate.shape, request),
                    timeout=self.ctx.settings.request_timeout_s,
                )
            except UpstreamHttpError as e:
                if (
                    candidate.shape == "responses"
                    and e.status_code in UNSUPPORTED_ENDPOINT_STATUS_CODES
                ):
                    self.preferences.remember(base, "chat")
                    self.ctx.tracer.event(
                        "OPENAI_ENDPOINT_FALLBACK",
                        attempted_endpoint=candidate.url,
                        status=e.status_code,
                        error=str(e),
                    )
                    last_error = e
                    if not pending:
                        # A rejected pinned preference was just replaced;
                        # pick up whatever shape that unlocks.
                        pending = [
                            c
                            for c in self.endpoint_candidates(base)
                            if c.url not in tried
                        ]
                    continue
                raise

            self.preferences.remember(base, candidate.shape)
            return payload

        if last_error is None:  # pragma: no cover - candidates is never empty
            raise RuntimeError("No OpenAI endpoint candidates")
        raise last_error
