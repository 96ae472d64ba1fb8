"""Small HTTP-related constants shared across Quill.

Kept separate from the drivers to avoid circular imports between retry and
provider error mapping.
"""

from __future__ import annotations

# Retryable status codes shared by provider mapping and core retry.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429, 500, 502, 503, 504})

# Status codes an OpenAI-compatible server returns for a path it does not serve.
UNSUPPORTED_ENDPOINT_STATUS_CODES: frozenset[int] = frozenset({404, 405})

JSON_HEADERS: dict[str, str] = {"Content-Type": "application/json"}
