"""Configuration: per-request ReasoningConfig and service-wide Settings."""

from __future__ import annotations

from dataclasses import dataclass, field
import os

from dotenv import load_dotenv

from quill.errors import ConfigurationError
from quill.retry import RetryPolicy

load_dotenv()

OPENAI_BASE_URL = "https://api.openai.com/v1"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"

DEFAULT_TEMPERATURE = 0.3
DEFAULT_REQUEST_TIMEOUT_S = 60.0
DEFAULT_KEY_TTL_S = 60 * 60.0
DEFAULT_CLEANUP_INTERVAL_S = 5 * 60.0


@dataclass(frozen=True)
class ReasoningConfig:
    """Per-request generation knobs.

    Example:
        config = ReasoningConfig(temperature=0.2)
        # max_tokens is computed from the input length when left unset
    """

    #: Provider default of 0.3 applies when *None*.
    temperature: float | None = None
    #: Overrides the computed token budget when set.
    max_tokens: int | None = None

    def __post_init__(self) -> None:
        """Validate option shapes early for clear errors."""
        if self.temperature is not None and (
            not isinstance(self.temperature, (int, float))
            or isinstance(self.temperature, bool)
            or not (0.0 <= self.temperature <= 2.0)
        ):
            raise ConfigurationError(
                f"temperature must be a number within [0, 2], got {self.temperature!r}",
                hint="Pass temperature=0.3 for conservative cleanup.",
            )
        if self.max_tokens is not None and (
            not isinstance(self.max_tokens, int)
            or isinstance(self.max_tokens, bool)
            or self.max_tokens <= 0
        ):
            raise ConfigurationError(
                "max_tokens must be a positive integer",
                hint="Leave max_tokens unset to size the budget from the input.",
            )

    @property
    def effective_temperature(self) -> float:
        """Temperature to send when the request shape carries one."""
        return DEFAULT_TEMPERATURE if self.temperature is None else self.temperature


@dataclass(frozen=True)
class Settings:
    """Immutable service-wide settings.

    Base URLs are the built-in endpoints; a user-supplied OpenAI override is
    read from durable storage at call time, not from here.
    """

    openai_base_url: str = OPENAI_BASE_URL
    gemini_base_url: str = GEMINI_BASE_URL
    groq_base_url: str = GROQ_BASE_URL
    #: Applied to every direct HTTP call. Delegated channels enforce their own.
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    key_ttl_s: float = DEFAULT_KEY_TTL_S
    cleanup_interval_s: float = DEFAULT_CLEANUP_INTERVAL_S
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        """Validate numeric fields."""
        if self.request_timeout_s <= 0:
            raise ConfigurationError(
                f"request_timeout_s must be > 0, got {self.request_timeout_s}",
                hint="This bounds each HTTP request to a provider.",
            )
        if self.key_ttl_s <= 0:
            raise ConfigurationError(
                f"key_ttl_s must be > 0, got {self.key_ttl_s}",
                hint="This controls how long fetched API keys stay cached.",
            )
        if self.cleanup_interval_s <= 0:
            raise ConfigurationError(
                f"cleanup_interval_s must be > 0, got {self.cleanup_interval_s}",
                hint="This controls how often expired API keys are swept.",
            )

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from ``QUILL_*`` environment variables."""
        kwargs: dict[str, object] = {}
        for env_var, name in (
            ("QUILL_OPENAI_BASE_URL", "openai_base_url"),
            ("QUILL_GEMINI_BASE_URL", "gemini_base_url"),
            ("QUILL_GROQ_BASE_URL", "groq_base_url"),
        ):
            value = os.environ.get(env_var, "").strip()
            if value:
                kwargs[name] = value.rstrip("/")

        for env_var, name in (
            ("QUILL_REQUEST_TIMEOUT_S", "request_timeout_s"),
            ("QUILL_KEY_TTL_S", "key_ttl_s"),
            ("QUILL_CLEANUP_INTERVAL_S", "cleanup_interval_s"),
        ):
            raw = os.environ.get(env_var, "").strip()
            if not raw:
                continue
            try:
                kwargs[name] = float(raw)
            except ValueError as e:
                raise ConfigurationError(
                    f"{env_var} must be a number, got {raw!r}",
                    hint=f"Unset {env_var} to use the default.",
                ) from e

        raw_attempts = os.environ.get("QUILL_MAX_ATTEMPTS", "").strip()
        if raw_attempts:
            try:
                kwargs["retry"] = RetryPolicy(max_attempts=int(raw_attempts))
            except ValueError as e:
                raise ConfigurationError(
                    f"QUILL_MAX_ATTEMPTS must be a positive integer, got {raw_attempts!r}",
                ) from e

        return cls(**kwargs)  # type: ignore[arg-type]
