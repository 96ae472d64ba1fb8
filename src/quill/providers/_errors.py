"""Shared provider-side error helpers.

Drivers attach retry metadata via ``APIError`` so core retry logic can be
bounded and deterministic without brittle substring matching.
"""

from __future__ import annotations

import json
import re
from typing import Any

import httpx

from quill._http import RETRYABLE_STATUS_CODES
from quill.errors import (
    APIError,
    RateLimitError,
    TransportError,
    UpstreamHttpError,
)
from quill.types import provider_label


_PROTO_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)s$")


def _retry_info_seconds(body: Any) -> float | None:
    """Extract retry delay from a Google API-style RetryInfo error body.

    Gemini error bodies are shaped like::

        {"error": {"details": [{"@type": "...RetryInfo", "retryDelay": "8s"}]}}

    The ``retryDelay`` value is a protobuf Duration string (e.g. ``"8s"``,
    ``"8.352104981s"``).
    """
    if not isinstance(body, dict):
        return None
    error: Any = body.get("error")
    if not isinstance(error, dict):
        return None
    detail_list: Any = error.get("details")
    if not isinstance(detail_list, list):
        return None
    for entry in detail_list:
        if not isinstance(entry, dict):
            continue
        at_type = entry.get("@type", "")
        if not isinstance(at_type, str) or "RetryInfo" not in at_type:
            continue
        delay_raw = entry.get("retryDelay")
        if not isinstance(delay_raw, str):
            continue
        m = _PROTO_DURATION_RE.match(delay_raw)
        if m:
            return float(m.group(1))
    return None


def _retry_after_header_seconds(headers: httpx.Headers) -> float | None:
    raw = headers.get("Retry-After")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def error_message_from_body(body: Any, *, fallback: str) -> str:
    """Pick the most specific message an error body offers.

    Order: ``error.message``, ``message``, a string ``error``, then *fallback*.
    """
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message.strip():
                return message
        message = body.get("message")
        if isinstance(message, str) and message.strip():
            return message
        if isinstance(error, str) and error.strip():
            return error
    return fallback


def _auth_hint(provider: str, status_code: int | None, cause_message: str) -> str | None:
    """Generate a hint for auth errors where naming the env var is useful."""
    cause_lower = cause_message.lower()
    if status_code in {401, 403} or (
        status_code == 400 and ("api key" in cause_lower or "api_key" in cause_lower)
    ):
        return (
            f"Check the {provider_label(provider)} API key "
            f"(try setting {provider.upper()}_API_KEY)."
        )
    return None


def http_error_from_response(response: httpx.Response, *, provider: str) -> APIError:
    """Map a non-2xx response into UpstreamHttpError with retry metadata.

    The body is parsed as JSON when possible; otherwise the raw text (or the
    reason phrase for an empty body) becomes the message.
    """
    status_code = response.status_code
    raw_text = response.text
    default = f"{provider_label(provider)} API error: {status_code}"
    body: Any = None
    try:
        body = json.loads(raw_text) if raw_text else None
    except ValueError:
        body = None

    if body is None:
        message = raw_text.strip() or response.reason_phrase or default
    else:
        message = error_message_from_body(body, fallback=default)

    retry_after_s = _retry_after_header_seconds(response.headers)
    if retry_after_s is None:
        retry_after_s = _retry_info_seconds(body)

    err_cls: type[APIError] = RateLimitError if status_code == 429 else UpstreamHttpError
    return err_cls(
        message,
        hint=_auth_hint(provider, status_code, message),
        retryable=status_code in RETRYABLE_STATUS_CODES or retry_after_s is not None,
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=provider,
        phase="request",
    )


def transport_error(
    exc: httpx.HTTPError, *, provider: str, phase: str
) -> TransportError:
    """Map an httpx failure that produced no HTTP response into TransportError."""
    cause = str(exc) or type(exc).__name__
    return TransportError(
        f"{provider_label(provider)} {phase} failed: {cause}",
        hint="Check the network connection and try again.",
        retryable=True,
        provider=provider,
        phase=phase,
    )
