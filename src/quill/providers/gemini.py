"""Gemini driver (``generateContent`` over REST)."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from quill.prompts import SYSTEM_PROMPT, render_user_prompt
from quill.providers._schemas import parse_gemini_response
from quill.providers._transport import post_json
from quill.providers._urls import build_api_url
from quill.retry import retry_async
from quill.tokens import GEMINI_TOKEN_LIMITS, resolve_max_tokens

if TYPE_CHECKING:
    from quill.providers.base import DriverContext
    from quill.providers.models import ReasoningRequest


def build_gemini_body(request: ReasoningRequest) -> dict[str, Any]:
    """Single-turn body; Gemini gets the system prompt inlined into the user text."""
    prompt = f"{SYSTEM_PROMPT}\n\n{render_user_prompt(request.text, request.agent_name)}"
    return {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {
            "temperature": request.config.effective_temperature,
            "maxOutputTokens": resolve_max_tokens(
                request.text, request.config, GEMINI_TOKEN_LIMITS
            ),
        },
    }


class GeminiDriver:
    """Direct HTTP driver for Google Gemini."""

    provider = "gemini"

    def __init__(self, ctx: DriverContext) -> None:
        self.ctx = ctx

    def endpoint(self, model: str) -> str:
        return build_api_url(
            self.ctx.settings.gemini_base_url, f"/models/{model}:generateContent"
        )

    async def process(self, request: ReasoningRequest) -> str:
        tracer = self.ctx.tracer
        tracer.event("GEMINI_START", model=request.model, agent_name=request.agent_name)

        with self.ctx.guard.hold(self.provider):
            api_key = await self.ctx.credentials.fetch(self.provider)
            try:
                return await self._process(request, api_key)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                tracer.event(
                    "GEMINI_ERROR",
                    model=request.model,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

    async def _process(self, request: ReasoningRequest, api_key: str) -> str:
        tracer = self.ctx.tracer
        url = self.endpoint(request.model)
        body = build_gemini_body(request)
        tracer.event(
            "GEMINI_REQUEST",
            endpoint=url,
            model=request.model,
            max_output_tokens=body["generationConfig"]["maxOutputTokens"],
        )

        payload = await retry_async(
            lambda: post_json(
                self.ctx.client,
                url,
                provider=self.provider,
                headers={"x-goog-api-key": api_key},
                body=body,
                timeout=self.ctx.settings.request_timeout_s,
            ),
            policy=self.ctx.settings.retry,
        )

        try:
            text, parsed = parse_gemini_response(payload)
        except Exception as e:
            candidates = payload.get("candidates") if isinstance(payload, dict) else None
            first = candidates[0] if isinstance(candidates, list) and candidates else None
            tracer.event(
                "GEMINI_EMPTY_RESPONSE",
                model=request.model,
                finish_reason=first.get("finishReason") if isinstance(first, dict) else None,
                error=str(e),
            )
            raise

        usage = parsed.usage_metadata
        tracer.event(
            "GEMINI_RESPONSE",
            model=request.model,
            response_length=len(text),
            tokens_used=(usage.total_token_count if usage else None) or 0,
        )
        return text
