"""Fixed prompt templates for dictation cleanup."""

from __future__ import annotations

import re

SYSTEM_PROMPT = (
    "You are a dictation assistant. Clean up text by fixing grammar and "
    "punctuation. Output ONLY the cleaned text without any explanations, "
    "options, or commentary."
)

AGENT_PROMPT_TEMPLATE = (
    "You are {{agentName}}, a helpful AI assistant. Process and improve the "
    "following text, removing any reference to your name from the output:"
    "\n\n{{text}}\n\nImproved text:"
)

REGULAR_PROMPT_TEMPLATE = (
    "Process and improve the following text:\n\n{{text}}\n\nImproved text:"
)

_PLACEHOLDER_RE = re.compile(r"\{\{(agentName|text)\}\}")


def _interpolate(template: str, values: dict[str, str]) -> str:
    # Single pass: placeholders inside substituted values stay literal.
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], template)


def render_user_prompt(text: str, agent_name: str | None = None) -> str:
    """Render the user turn, branding it with *agent_name* when one is given."""
    if agent_name and agent_name.strip():
        return _interpolate(
            AGENT_PROMPT_TEMPLATE, {"agentName": agent_name.strip(), "text": text}
        )
    return _interpolate(REGULAR_PROMPT_TEMPLATE, {"text": text})


def build_messages(text: str, agent_name: str | None = None) -> list[dict[str, str]]:
    """Return the two-message system/user prompt shared by chat-style APIs."""
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": render_user_prompt(text, agent_name)},
    ]
