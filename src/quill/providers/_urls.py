"""Base-URL helpers shared by the direct drivers."""

from __future__ import annotations


def normalize_base_url(value: str | None) -> str:
    """Trim whitespace and trailing slashes; ``""`` for empty input."""
    if not value:
        return ""
    return value.strip().rstrip("/")


def build_api_url(base: str, path: str) -> str:
    """Join *base* and *path* with exactly one slash between them."""
    return f"{normalize_base_url(base)}/{path.lstrip('/')}"
