"""ReasoningService boundary tests.

Exercise the public entry point end to end over a scripted transport:
routing by model, validation order, the single in-flight slot, error
propagation, availability checks, and lifecycle.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest

import quill
from quill.errors import (
    ApiKeyMissingError,
    ConcurrencyError,
    ConfigurationError,
    NoModelSelectedError,
    UnsupportedProviderError,
    UpstreamHttpError,
)
from quill.registry import CloudModel, StaticModelRegistry
from quill.service import ReasoningService
from tests.conftest import (
    ANTHROPIC_MODEL,
    GEMINI_MODEL,
    GEMINI_URL,
    GROQ_MODEL,
    GROQ_URL,
    LOCAL_MODEL,
    OPENAI_MODEL,
    OPENAI_URL,
    FakeChannel,
    FakeHTTP,
    FakeLocalProbe,
    StaticKeyRetriever,
    reply,
)

pytestmark = pytest.mark.integration

GEMINI_ENDPOINT = f"{GEMINI_URL}/models/{GEMINI_MODEL}:generateContent"
GROQ_ENDPOINT = f"{GROQ_URL}/chat/completions"
RESPONSES_URL = f"{OPENAI_URL}/responses"

_CHAT_OK = {"choices": [{"message": {"content": "Groq says hi."}}]}
_GEMINI_OK = {"candidates": [{"content": {"parts": [{"text": "Gemini says hi."}]}}]}
_RESPONSES_OK = {
    "output": [
        {
            "type": "message",
            "content": [{"type": "output_text", "text": "OpenAI says hi."}],
        }
    ]
}


def _gated(started: asyncio.Event, release: asyncio.Event, payload: dict[str, Any]):
    """Reply that blocks until *release* is set."""

    async def _wait(request: httpx.Request) -> httpx.Response:
        started.set()
        await release.wait()
        return httpx.Response(200, json=payload, request=request)

    return _wait


def _script_all(fake_http: FakeHTTP) -> None:
    fake_http.add(RESPONSES_URL, reply(json_body=_RESPONSES_OK))
    fake_http.add(GEMINI_ENDPOINT, reply(json_body=_GEMINI_OK))
    fake_http.add(GROQ_ENDPOINT, reply(json_body=_CHAT_OK))


# =============================================================================
# Routing
# =============================================================================


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("model", "expected", "provider"),
    [
        (OPENAI_MODEL, "OpenAI says hi.", "openai"),
        (GEMINI_MODEL, "Gemini says hi.", "gemini"),
        (GROQ_MODEL, "Groq says hi.", "groq"),
        (ANTHROPIC_MODEL, "Delegated.", "anthropic"),
        (LOCAL_MODEL, "Delegated.", "local"),
        (f"  {GROQ_MODEL}  ", "Groq says hi.", "groq"),
    ],
)
async def test_process_routes_by_model(
    fake_http, make_service, reporter, model: str, expected: str, provider: str
) -> None:
    _script_all(fake_http)

    async with make_service(
        anthropic_channel=FakeChannel(), local_channel=FakeChannel()
    ) as service:
        result = await service.process("hello there", model)

    assert result == expected
    [selection] = reporter.find("PROVIDER_SELECTION")
    assert selection["provider"] == provider
    assert selection["model"] == model.strip()
    [success] = reporter.find("PROVIDER_SUCCESS")
    assert success["result_length"] == len(expected)
    assert reporter.names()[-1] == "PROVIDER_SUCCESS"


@pytest.mark.asyncio
async def test_injected_registry_decides_the_provider(fake_http, make_service) -> None:
    fake_http.add(GROQ_ENDPOINT, reply(json_body=_CHAT_OK))
    registry = StaticModelRegistry([CloudModel("house-model", "groq")], infer=False)

    async with make_service(registry=registry) as service:
        assert await service.process("text", "house-model") == "Groq says hi."
        with pytest.raises(UnsupportedProviderError):
            await service.process("text", OPENAI_MODEL)


# =============================================================================
# Validation Order
# =============================================================================


@pytest.mark.asyncio
@pytest.mark.parametrize("model", ["", "   ", None])
async def test_missing_model_fails_before_any_work(
    fake_http, make_service, keys, model: Any
) -> None:
    async with make_service() as service:
        with pytest.raises(NoModelSelectedError, match="No reasoning model selected"):
            await service.process("text", model)

    assert keys.calls == {}
    assert fake_http.requests == []


@pytest.mark.asyncio
async def test_unknown_model_is_unsupported(fake_http, make_service, reporter) -> None:
    async with make_service() as service:
        with pytest.raises(UnsupportedProviderError, match="mystery-9000") as exc:
            await service.process("text", "mystery-9000")

    assert exc.value.model == "mystery-9000"
    assert fake_http.requests == []
    assert reporter.find("PROVIDER_ERROR")


@pytest.mark.asyncio
async def test_missing_key_fails_without_network(fake_http, make_service) -> None:
    keys = StaticKeyRetriever(keys={})

    async with make_service(key_retriever=keys) as service:
        with pytest.raises(ApiKeyMissingError, match="Gemini API key not configured"):
            await service.process("text", GEMINI_MODEL)
        assert not service.is_processing

    assert fake_http.requests == []


# =============================================================================
# In-Flight Slot
# =============================================================================


@pytest.mark.asyncio
async def test_overlapping_calls_are_rejected_immediately(
    fake_http, make_service
) -> None:
    started, release = asyncio.Event(), asyncio.Event()
    fake_http.add(GEMINI_ENDPOINT, _gated(started, release, _GEMINI_OK))
    fake_http.add(GROQ_ENDPOINT, reply(json_body=_CHAT_OK))
    channel = FakeChannel()

    async with make_service(anthropic_channel=channel) as service:
        first = asyncio.create_task(service.process("text", GEMINI_MODEL))
        await started.wait()
        assert service.is_processing

        with pytest.raises(ConcurrencyError, match="Already processing a request"):
            await service.process("text", GROQ_MODEL)
        with pytest.raises(ConcurrencyError):
            await service.process("text", ANTHROPIC_MODEL)

        release.set()
        assert await first == "Gemini says hi."
        assert not service.is_processing
        assert await service.process("text", GROQ_MODEL) == "Groq says hi."

    assert channel.calls == []
    assert [str(r.url) for r in fake_http.requests] == [GEMINI_ENDPOINT, GROQ_ENDPOINT]


@pytest.mark.asyncio
async def test_delegated_calls_do_not_take_the_slot(make_service) -> None:
    started, release = asyncio.Event(), asyncio.Event()

    class _SlowChannel(FakeChannel):
        async def process(self, text, model, agent_name, config):
            started.set()
            await release.wait()
            return await super().process(text, model, agent_name, config)

    async with make_service(local_channel=_SlowChannel()) as service:
        pending = asyncio.create_task(service.process("text", LOCAL_MODEL))
        await started.wait()
        assert not service.is_processing
        release.set()
        assert await pending == "Delegated."


@pytest.mark.asyncio
async def test_slot_is_released_after_cancellation(fake_http, make_service) -> None:
    started, release = asyncio.Event(), asyncio.Event()
    fake_http.add(GEMINI_ENDPOINT, _gated(started, release, _GEMINI_OK))

    async with make_service() as service:
        task = asyncio.create_task(service.process("text", GEMINI_MODEL))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not service.is_processing


# =============================================================================
# Error Propagation
# =============================================================================


@pytest.mark.asyncio
async def test_provider_errors_propagate_unchanged(
    fake_http, make_service, reporter
) -> None:
    fake_http.add(
        GEMINI_ENDPOINT,
        reply(403, json_body={"error": {"message": "API key not valid"}}),
    )

    async with make_service() as service:
        with pytest.raises(UpstreamHttpError, match="API key not valid") as exc:
            await service.process("text", GEMINI_MODEL)
        assert not service.is_processing

    assert exc.value.provider == "gemini"
    assert exc.value.status_code == 403
    [event] = reporter.find("PROVIDER_ERROR")
    assert event["error_type"] == "UpstreamHttpError"
    assert "GEMINI_ERROR" in reporter.names()


@pytest.mark.asyncio
async def test_config_mapping_reaches_the_request(fake_http, make_service) -> None:
    fake_http.add(GROQ_ENDPOINT, reply(json_body=_CHAT_OK))

    async with make_service() as service:
        await service.process(
            "text", GROQ_MODEL, config={"temperature": 0.0, "maxTokens": 64}
        )

    body = fake_http.body()
    assert body["temperature"] == 0.0
    assert body["max_tokens"] == 64


@pytest.mark.asyncio
async def test_invalid_config_fails_before_dispatch(fake_http, make_service) -> None:
    async with make_service() as service:
        with pytest.raises(ConfigurationError, match="temperature"):
            await service.process("text", GROQ_MODEL, config={"temperature": 9})

    assert fake_http.requests == []


# =============================================================================
# Credentials
# =============================================================================


@pytest.mark.asyncio
async def test_keys_are_cached_across_calls(fake_http, make_service, keys) -> None:
    fake_http.add(GROQ_ENDPOINT, reply(json_body=_CHAT_OK))

    async with make_service() as service:
        await service.process("one", GROQ_MODEL)
        await service.process("two", GROQ_MODEL)
        assert keys.calls["groq"] == 1

        service.clear_api_key_cache("groq")
        await service.process("three", GROQ_MODEL)

    assert keys.calls["groq"] == 2


@pytest.mark.asyncio
async def test_clear_all_keys(make_service, reporter) -> None:
    async with make_service() as service:
        service.credentials.set("openai", "a")
        service.credentials.set("gemini", "b")

        service.clear_api_key_cache()

        assert service.credentials.size == 0
    [event] = reporter.find("API_KEY_CACHE_CLEARED")
    assert event["provider"] == "all"


@pytest.mark.asyncio
async def test_is_available_with_any_key(make_service) -> None:
    keys = StaticKeyRetriever(keys={"groq": "gsk"})
    async with make_service(key_retriever=keys) as service:
        assert await service.is_available() is True


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("probe", "expected"),
    [
        (None, False),
        (FakeLocalProbe(available=False), False),
        (FakeLocalProbe(available=True), True),
    ],
)
async def test_is_available_without_keys_depends_on_local(
    make_service, probe: FakeLocalProbe | None, expected: bool
) -> None:
    keys = StaticKeyRetriever(keys={})
    async with make_service(key_retriever=keys, local_probe=probe) as service:
        assert await service.is_available() is expected


@pytest.mark.asyncio
async def test_is_available_swallows_lookup_failures(make_service, reporter) -> None:
    keys = StaticKeyRetriever(error=RuntimeError("keychain locked"))

    async with make_service(key_retriever=keys) as service:
        assert await service.is_available() is False

    [event] = reporter.find("API_KEY_CHECK_ERROR")
    assert event["error"] == "keychain locked"


# =============================================================================
# Lifecycle
# =============================================================================


@pytest.mark.asyncio
async def test_context_manager_runs_and_stops_the_sweep(make_service) -> None:
    service = make_service()

    async with service:
        assert service.credentials.cleanup_running

    assert not service.credentials.cleanup_running
    service.destroy()  # idempotent
    with pytest.raises(ConfigurationError, match="closed"):
        service.start()


@pytest.mark.asyncio
async def test_owned_client_is_closed_but_injected_client_is_not(
    fake_http,
) -> None:
    owned = ReasoningService(key_retriever=StaticKeyRetriever())
    await owned.aclose()
    assert owned._client.is_closed

    client = fake_http.client()
    injected = ReasoningService(key_retriever=StaticKeyRetriever(), client=client)
    await injected.aclose()
    assert not client.is_closed
    await client.aclose()


@pytest.mark.asyncio
async def test_run_uses_environment_keys(
    fake_http, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake_http.add(GROQ_ENDPOINT, reply(json_body=_CHAT_OK))
    monkeypatch.setenv("GROQ_API_KEY", "gsk-env")
    monkeypatch.setenv("QUILL_MAX_ATTEMPTS", "1")
    real_client = httpx.AsyncClient

    def _client(**kwargs: Any) -> httpx.AsyncClient:
        return real_client(transport=httpx.MockTransport(fake_http.handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", _client)

    result = await quill.run("text", model=GROQ_MODEL)

    assert result == "Groq says hi."
    assert fake_http.requests[0].headers["Authorization"] == "Bearer gsk-env"
