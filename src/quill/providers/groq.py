"""Groq driver and the shared Chat Completions call it is built on."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from quill.prompts import build_messages
from quill.providers._schemas import parse_chat_completion
from quill.providers._transport import post_json
from quill.providers._urls import build_api_url
from quill.retry import retry_async
from quill.tokens import DEFAULT_TOKEN_LIMITS, resolve_max_tokens

if TYPE_CHECKING:
    from quill.providers.base import DriverContext
    from quill.providers.models import ReasoningRequest
    from quill.registry import ModelRegistry


def build_chat_body(
    request: ReasoningRequest, *, disable_thinking: bool = False
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "model": request.model,
        "messages": build_messages(request.text, request.agent_name),
        "temperature": request.config.effective_temperature,
        "max_tokens": resolve_max_tokens(
            request.text, request.config, DEFAULT_TOKEN_LIMITS
        ),
    }
    if disable_thinking:
        body["chat_template_kwargs"] = {"enable_thinking": False}
    return body


async def call_chat_completions(
    ctx: DriverContext,
    endpoint: str,
    api_key: str,
    request: ReasoningRequest,
    *,
    provider: str,
    disable_thinking: bool = False,
) -> str:
    """POST an OpenAI-compatible chat request and return the trimmed reply."""
    tag = provider.upper()
    body = build_chat_body(request, disable_thinking=disable_thinking)
    if disable_thinking:
        ctx.tracer.event("THINKING_DISABLED", model=request.model, provider=provider)
    ctx.tracer.event(
        f"{tag}_REQUEST",
        endpoint=endpoint,
        model=request.model,
        max_tokens=body["max_tokens"],
    )

    payload = await retry_async(
        lambda: post_json(
            ctx.client,
            endpoint,
            provider=provider,
            headers={"Authorization": f"Bearer {api_key}"},
            body=body,
            timeout=ctx.settings.request_timeout_s,
        ),
        policy=ctx.settings.retry,
    )

    try:
        text, parsed = parse_chat_completion(payload, provider=provider)
    except Exception as e:
        ctx.tracer.event(
            f"{tag}_RESPONSE_ERROR", model=request.model, error=str(e)
        )
        raise

    ctx.tracer.event(
        f"{tag}_RESPONSE",
        model=request.model,
        response_length=len(text),
        tokens_used=(parsed.usage.total_tokens if parsed.usage else None) or 0,
    )
    return text


class GroqDriver:
    """Direct HTTP driver for Groq's OpenAI-compatible API."""

    provider = "groq"

    def __init__(self, ctx: DriverContext, registry: ModelRegistry) -> None:
        self.ctx = ctx
        self.registry = registry

    async def process(self, request: ReasoningRequest) -> str:
        tracer = self.ctx.tracer
        tracer.event("GROQ_START", model=request.model, agent_name=request.agent_name)

        with self.ctx.guard.hold(self.provider):
            api_key = await self.ctx.credentials.fetch(self.provider)
            try:
                model_def = self.registry.get_cloud_model(request.model)
                return await call_chat_completions(
                    self.ctx,
                    build_api_url(self.ctx.settings.groq_base_url, "/chat/completions"),
                    api_key,
                    request,
                    provider=self.provider,
                    disable_thinking=bool(model_def and model_def.disable_thinking),
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                tracer.event(
                    "GROQ_ERROR",
                    model=request.model,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise
