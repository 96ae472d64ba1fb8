"""Output-token budgeting.

The budget scales with the input length and is clamped to provider bounds:

    max(floor, min(ceil(len(text) * multiplier), ceiling))

An explicit ``ReasoningConfig.max_tokens`` always wins.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from quill.config import ReasoningConfig


@dataclass(frozen=True)
class TokenLimits:
    """Provider bounds for the computed output-token budget."""

    floor: int
    ceiling: int
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.floor < 1:
            raise ValueError("TokenLimits.floor must be >= 1")
        if self.ceiling < self.floor:
            raise ValueError("TokenLimits.ceiling must be >= floor")
        if self.multiplier <= 0:
            raise ValueError("TokenLimits.multiplier must be > 0")


DEFAULT_TOKEN_LIMITS = TokenLimits(floor=4096, ceiling=8192)
# Gemini thinking models spend part of the budget before emitting text.
GEMINI_TOKEN_LIMITS = TokenLimits(floor=2000, ceiling=8192)


def estimate_max_tokens(text_length: int, limits: TokenLimits) -> int:
    """Return the output-token budget for an input of *text_length* characters."""
    scaled = math.ceil(max(0, text_length) * limits.multiplier)
    return max(limits.floor, min(scaled, limits.ceiling))


def resolve_max_tokens(
    text: str, config: ReasoningConfig, limits: TokenLimits = DEFAULT_TOKEN_LIMITS
) -> int:
    """Return the caller override if any, otherwise the estimated budget."""
    if config.max_tokens is not None:
        return config.max_tokens
    return estimate_max_tokens(len(text), limits)
