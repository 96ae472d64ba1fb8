"""Pytest configuration and fixtures.

Provides environment isolation, marker registration, and small test doubles
(scripted HTTP transport, key retriever, clock, delegated channels). All
fixtures here are autouse unless noted.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass, field
import json
import logging
import os
from typing import Any

import httpx
import pytest

from quill.config import Settings
from quill.retry import RetryPolicy
from quill.service import ReasoningService
from quill.storage import MemoryStore
from quill.telemetry import MemoryReporter, Tracer

OPENAI_URL = "https://api.openai.com/v1"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta"
GROQ_URL = "https://api.groq.com/openai/v1"

OPENAI_MODEL = "gpt-5-mini"
GEMINI_MODEL = "gemini-2.5-flash"
GROQ_MODEL = "llama-3.3-70b-versatile"
ANTHROPIC_MODEL = "claude-sonnet-4-5"
LOCAL_MODEL = "qwen2.5-7b-instruct"

TEST_KEYS = {
    "openai": "sk-test-openai",
    "anthropic": "sk-ant-test",
    "gemini": "gm-test-key",
    "groq": "gsk-test-key",
}

# Retries without sleeping; three attempts like the default policy.
FAST_RETRY = RetryPolicy(max_attempts=3, initial_delay_s=0.0, jitter=False)
FAST_SETTINGS = Settings(retry=FAST_RETRY)

# =============================================================================
# Test Doubles
# =============================================================================

Reply = Callable[[httpx.Request], Any]


def reply(
    status: int = 200,
    *,
    json_body: Any = None,
    text: str | None = None,
    headers: dict[str, str] | None = None,
) -> Reply:
    """Build a scripted response; a fresh ``httpx.Response`` per request."""

    def _make(request: httpx.Request) -> httpx.Response:
        if json_body is not None:
            return httpx.Response(status, json=json_body, headers=headers, request=request)
        return httpx.Response(status, text=text or "", headers=headers, request=request)

    return _make


def fail(exc_type: type[httpx.RequestError] = httpx.ConnectError) -> Reply:
    """Build a scripted transport failure (no HTTP response)."""

    def _raise(request: httpx.Request) -> httpx.Response:
        raise exc_type("scripted transport failure", request=request)

    return _raise


@dataclass
class FakeHTTP:
    """Scripted ``httpx.MockTransport`` keyed by full request URL.

    Each URL holds a queue of replies; the last reply is sticky so a single
    scripted answer serves any number of calls. Unscripted URLs answer 404.
    """

    routes: dict[str, list[Reply]] = field(default_factory=dict)
    requests: list[httpx.Request] = field(default_factory=list)

    def add(self, url: str, *replies: Reply) -> FakeHTTP:
        self.routes.setdefault(url, []).extend(replies)
        return self

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(str(request.url))
        if not queue:
            return httpx.Response(
                404, json={"error": {"message": "Not Found"}}, request=request
            )
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        result = item(request)
        if not isinstance(result, httpx.Response):
            result = await result
        return result

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    @property
    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]

    def body(self, index: int = -1) -> dict[str, Any]:
        return json.loads(self.requests[index].content)


@dataclass
class StaticKeyRetriever:
    """KeyRetriever over a dict; counts calls per provider."""

    keys: dict[str, str | None] = field(default_factory=lambda: dict(TEST_KEYS))
    calls: dict[str, int] = field(default_factory=dict)
    error: Exception | None = None

    async def get_key(self, provider: str) -> str | None:
        self.calls[provider] = self.calls.get(provider, 0) + 1
        if self.error is not None:
            raise self.error
        return self.keys.get(provider)


@dataclass
class FakeClock:
    """Manually advanced monotonic clock."""

    now: float = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class FakeChannel:
    """Delegated channel returning a scripted envelope (or raising)."""

    result: Any = field(default_factory=lambda: {"success": True, "text": "Delegated."})
    calls: list[tuple[str, str, str | None, Any]] = field(default_factory=list)

    async def process(
        self, text: str, model: str, agent_name: str | None, config: Any
    ) -> Any:
        self.calls.append((text, model, agent_name, config))
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


@dataclass
class FakeLocalProbe:
    available: bool = False
    error: Exception | None = None

    async def check_local_reasoning_available(self) -> bool:
        if self.error is not None:
            raise self.error
        return self.available


# =============================================================================
# Fixtures (opt-in)
# =============================================================================


@pytest.fixture
def fake_http() -> FakeHTTP:
    return FakeHTTP()


@pytest.fixture
def reporter() -> MemoryReporter:
    return MemoryReporter()


@pytest.fixture
def keys() -> StaticKeyRetriever:
    return StaticKeyRetriever()


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def make_service(
    fake_http: FakeHTTP,
    reporter: MemoryReporter,
    keys: StaticKeyRetriever,
    store: MemoryStore,
) -> Callable[..., ReasoningService]:
    """Factory for a service wired to the fake transport and fast retries.

    Use as ``async with make_service(...) as service:`` so the credential
    sweep is stopped on exit.
    """

    def _make(**overrides: Any) -> ReasoningService:
        kwargs: dict[str, Any] = {
            "key_retriever": keys,
            "client": fake_http.client(),
            "store": store,
            "settings": FAST_SETTINGS,
            "tracer": Tracer(reporter),
        }
        kwargs.update(overrides)
        return ReasoningService(**kwargs)

    return _make


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch):
    """Ensure a clean provider environment for each test.

    Clears provider key and QUILL_* env vars to prevent test pollution.
    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith(("OPENAI_", "GEMINI_", "GROQ_", "ANTHROPIC_", "QUILL_")):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging & Markers
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def pytest_configure(config):
    """Configure custom markers for test organization."""
    markers = [
        "unit: Fast, isolated unit tests",
        "contract: Request/response shapes exchanged with provider APIs",
        "integration: Service-level flows over a mocked transport",
        "api: Real API integration tests (requires API keys)",
        "allow_dotenv: Let python-dotenv read .env files",
        "allow_env_pollution: Keep provider env vars for this test",
    ]
    for marker in markers:
        config.addinivalue_line("markers", marker)


API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if os.getenv("ENABLE_API_TESTS"):
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)
