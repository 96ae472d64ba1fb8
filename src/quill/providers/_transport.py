"""JSON-over-HTTP exchange shared by the direct drivers."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import httpx

from quill._http import JSON_HEADERS
from quill.errors import UpstreamProtocolError
from quill.providers._errors import http_error_from_response, transport_error
from quill.types import provider_label

if TYPE_CHECKING:
    from collections.abc import Mapping


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    provider: str,
    headers: Mapping[str, str],
    body: dict[str, Any],
    timeout: float | None = None,
) -> Any:
    """POST *body* as JSON and return the decoded JSON response.

    Raises:
        TransportError: No HTTP response was received.
        UpstreamHttpError: The server answered with a non-2xx status.
        UpstreamProtocolError: A 2xx answer whose body is not JSON.
    """
    try:
        response = await client.post(
            url,
            headers={**JSON_HEADERS, **headers},
            json=body,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
    except asyncio.CancelledError:
        raise
    except httpx.HTTPError as e:
        raise transport_error(e, provider=provider, phase="request") from e

    if not response.is_success:
        raise http_error_from_response(response, provider=provider)

    try:
        return response.json()
    except ValueError as e:
        raise UpstreamProtocolError(
            f"Invalid response structure from {provider_label(provider)} API",
            status_code=response.status_code,
            provider=provider,
            phase="parse",
        ) from e
