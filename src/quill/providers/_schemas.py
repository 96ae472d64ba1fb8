"""Response shapes per provider, with one explicit parser each.

Each payload is validated into a pydantic model first; unknown fields are
ignored, and a payload that does not fit the model at all is an
``UpstreamProtocolError``. Parsers never coerce: absent or blank fields are
treated as "no text" and the caller's empty-result policy decides.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from quill.errors import (
    DelegationError,
    UpstreamEmptyResponse,
    UpstreamProtocolError,
    UpstreamTokenLimitExceeded,
)
from quill.types import provider_label


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


M = TypeVar("M", bound="_Payload")


def _validate(model: type[M], payload: Any, *, provider: str) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise UpstreamProtocolError(
            f"Invalid response structure from {provider_label(provider)} API",
            provider=provider,
            phase="parse",
        ) from e


def _nonblank(value: str | None) -> str:
    return value.strip() if isinstance(value, str) else ""


# =============================================================================
# OpenAI-compatible: Responses API and Chat Completions
# =============================================================================


class ContentPart(_Payload):
    type: str | None = None
    text: str | None = None


class ResponsesOutputItem(_Payload):
    type: str | None = None
    content: list[ContentPart] | None = None


class ChatMessage(_Payload):
    content: str | list[ContentPart] | None = None


class ChatChoice(_Payload):
    message: ChatMessage | None = None
    delta: ChatMessage | None = None
    #: Legacy completions field.
    text: str | None = None
    finish_reason: str | None = None


class Usage(_Payload):
    total_tokens: int | None = None


class OpenAIPayload(_Payload):
    """Union of the Responses (``output``) and Chat (``choices``) shapes."""

    output: list[ResponsesOutputItem] | None = None
    output_text: str | None = None
    choices: list[ChatChoice] | None = None
    usage: Usage | None = None

    @property
    def format(self) -> str:
        if self.output is not None:
            return "responses"
        if self.choices is not None:
            return "chat_completions"
        return "unknown"


def _text_from_responses_output(items: list[ResponsesOutputItem]) -> str:
    for item in items:
        if item.type != "message" or not item.content:
            continue
        for part in item.content:
            if part.type == "output_text" and _nonblank(part.text):
                return _nonblank(part.text)
    return ""


def _text_from_choice(choice: ChatChoice) -> str:
    message = choice.message if choice.message is not None else choice.delta
    content = message.content if message is not None else None

    if isinstance(content, str) and content.strip():
        return content.strip()
    if isinstance(content, list):
        for part in content:
            if _nonblank(part.text):
                return _nonblank(part.text)
    return _nonblank(choice.text)


def parse_openai_payload(payload: Any) -> OpenAIPayload:
    return _validate(OpenAIPayload, payload, provider="openai")


def extract_openai_text(parsed: OpenAIPayload) -> str:
    """Return the first non-blank text an OpenAI-compatible payload carries.

    Search order: Responses ``output[].content[]`` ``output_text`` entries,
    the top-level ``output_text`` convenience field, then each chat choice's
    message (or delta) content, plain or array-of-parts, then its legacy
    ``text``. Returns ``""`` when nothing matches.
    """
    if parsed.output:
        text = _text_from_responses_output(parsed.output)
        if text:
            return text

    text = _nonblank(parsed.output_text)
    if text:
        return text

    for choice in parsed.choices or ():
        text = _text_from_choice(choice)
        if text:
            return text
    return ""


class ChatCompletionPayload(_Payload):
    choices: list[ChatChoice] | None = None
    usage: Usage | None = None


def parse_chat_completion(payload: Any, *, provider: str) -> tuple[str, ChatCompletionPayload]:
    """Return ``choices[0].message.content`` trimmed, plus the parsed payload.

    Raises:
        UpstreamProtocolError: No choices at all.
        UpstreamEmptyResponse: The first choice carries no text.
    """
    parsed = _validate(ChatCompletionPayload, payload, provider=provider)
    label = provider_label(provider)
    if not parsed.choices:
        raise UpstreamProtocolError(
            f"Invalid response structure from {label} API",
            provider=provider,
            phase="parse",
        )

    message = parsed.choices[0].message
    content = message.content if message is not None else None
    text = content.strip() if isinstance(content, str) else ""
    if not text:
        raise UpstreamEmptyResponse(
            f"{label} returned empty response", provider=provider, phase="parse"
        )
    return text, parsed


# =============================================================================
# Gemini generateContent
# =============================================================================

GEMINI_TOKEN_LIMIT_MESSAGE = (
    "Gemini reached token limit before generating response. "
    "Try a shorter input or increase max tokens."
)


class GeminiPart(_Payload):
    text: str | None = None


class GeminiContent(_Payload):
    parts: list[GeminiPart] | None = None


class GeminiCandidate(_Payload):
    content: GeminiContent | None = None
    finish_reason: str | None = Field(default=None, alias="finishReason")


class GeminiUsage(_Payload):
    total_token_count: int | None = Field(default=None, alias="totalTokenCount")


class GeminiPayload(_Payload):
    candidates: list[GeminiCandidate] | None = None
    usage_metadata: GeminiUsage | None = Field(default=None, alias="usageMetadata")


def parse_gemini_response(payload: Any) -> tuple[str, GeminiPayload]:
    """Return ``candidates[0].content.parts[0].text`` trimmed, plus the payload.

    Raises:
        UpstreamProtocolError: No candidates at all.
        UpstreamTokenLimitExceeded: No text and ``finishReason == "MAX_TOKENS"``.
        UpstreamEmptyResponse: No text for any other reason.
    """
    parsed = _validate(GeminiPayload, payload, provider="gemini")
    if not parsed.candidates:
        raise UpstreamProtocolError(
            "Invalid response structure from Gemini API",
            provider="gemini",
            phase="parse",
        )

    candidate = parsed.candidates[0]
    parts = candidate.content.parts if candidate.content is not None else None
    text = _nonblank(parts[0].text) if parts else ""
    if text:
        return text, parsed

    if candidate.finish_reason == "MAX_TOKENS":
        raise UpstreamTokenLimitExceeded(
            GEMINI_TOKEN_LIMIT_MESSAGE,
            hint="Pass ReasoningConfig(max_tokens=...) with a larger budget.",
            provider="gemini",
            phase="parse",
        )
    raise UpstreamEmptyResponse(
        "Gemini returned empty response", provider="gemini", phase="parse"
    )


# =============================================================================
# Delegated channel envelope
# =============================================================================


class DelegationEnvelope(_Payload):
    success: bool
    text: str | None = None
    error: str | None = None


def parse_delegation_result(payload: Any, *, provider: str) -> str:
    """Unwrap a ``{success, text}`` / ``{success: false, error}`` envelope.

    Raises:
        DelegationError: The channel reported failure or sent a malformed envelope.
        UpstreamEmptyResponse: Success with no text.
    """
    label = provider_label(provider)
    try:
        envelope = DelegationEnvelope.model_validate(payload)
    except ValidationError as e:
        raise DelegationError(
            f"{label} reasoning returned an invalid result",
            provider=provider,
            phase="delegate",
        ) from e

    if not envelope.success:
        raise DelegationError(
            envelope.error or f"{label} reasoning failed",
            provider=provider,
            phase="delegate",
        )

    text = _nonblank(envelope.text)
    if not text:
        raise UpstreamEmptyResponse(
            f"{label} returned empty response", provider=provider, phase="delegate"
        )
    return text
