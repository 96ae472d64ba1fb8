"""Provider drivers."""

from .base import DriverContext, ReasoningDriver
from .delegated import DelegatedDriver
from .gemini import GeminiDriver
from .groq import GroqDriver
from .models import EndpointCandidate, ReasoningRequest
from .openai import OpenAIDriver

__all__ = [
    "DelegatedDriver",
    "DriverContext",
    "EndpointCandidate",
    "GeminiDriver",
    "GroqDriver",
    "OpenAIDriver",
    "ReasoningDriver",
    "ReasoningRequest",
]
