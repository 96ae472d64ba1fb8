"""Exception hierarchy for Quill."""

from __future__ import annotations


class QuillError(Exception):
    """Base exception for all Quill errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(QuillError):
    """Configuration validation or resolution failed."""


class NoModelSelectedError(ConfigurationError):
    """The request named no reasoning model."""


class UnsupportedProviderError(ConfigurationError):
    """The model registry could not classify the requested model."""

    def __init__(
        self, message: str, *, model: str | None = None, hint: str | None = None
    ) -> None:
        super().__init__(message, hint=hint)
        self.model = model


class CredentialError(QuillError):
    """An API key could not be obtained."""


class ApiKeyMissingError(CredentialError):
    """The key-retrieval capability returned nothing (or failed)."""

    def __init__(
        self, message: str, *, provider: str | None = None, hint: str | None = None
    ) -> None:
        super().__init__(message, hint=hint)
        self.provider = provider


class ConcurrencyError(QuillError):
    """A direct provider call is already in flight on this service."""


class APIError(QuillError):
    """Provider call failed.

    Drivers attach retry metadata so the retry executor can make bounded,
    deterministic decisions without brittle substring matching.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.phase = phase


class UpstreamProtocolError(APIError):
    """The provider answered with a malformed or unexpected shape."""


class UpstreamEmptyResponse(APIError):
    """The provider answered well-formed JSON with no usable text."""


class UpstreamTokenLimitExceeded(UpstreamEmptyResponse):
    """The model stopped on its output-token limit before producing text."""


class UpstreamHttpError(APIError):
    """The provider answered with a non-2xx status."""


class RateLimitError(UpstreamHttpError):
    """Rate limit exceeded (HTTP 429)."""


class TransportError(APIError):
    """The request never produced an HTTP response (DNS, connect, timeout)."""


class DelegationError(APIError):
    """A delegated channel (Anthropic, Local) reported failure."""
