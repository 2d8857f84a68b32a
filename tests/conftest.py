"""Shared test fixtures and utilities."""

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from src.config import Config
from src.services.conversation_store import SessionStore
from src.services.log_analyzer import LogAnalyzer
from src.services.qwen_client import QwenClient

API_URL = "http://qwen.test/api/v1/services/aigc/text-generation/generation"

JAVA_LOG = (
    "Exception in thread \"main\" java.lang.NullPointerException\n"
    "\tat com.example.OrderService.submit(OrderService.java:42)\n"
    "\tat com.example.Main.main(Main.java:10)"
)

# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_config() -> Config:
    """Create a test Config with no delay between retries."""
    return Config(api_key="test-key", api_url=API_URL, retry_count=2, retry_delay=0.0)


# ============================================================================
# Clock
# ============================================================================


class FakeClock:
    """Manually advanced clock for session expiry tests."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> SessionStore:
    return SessionStore(clock=clock)


# ============================================================================
# Completion Endpoint Stubs
# ============================================================================


def ok_response(text: str) -> httpx.Response:
    return httpx.Response(200, json={"output": {"text": text}, "request_id": "req-1"})


class ScriptedEndpoint:
    """Stub completion endpoint that replays a fixed list of replies.

    Each step is an httpx.Response or the string "connect_error". The last
    step repeats once the script runs out.
    """

    def __init__(self, *steps):
        self.steps = list(steps)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if step == "connect_error":
            raise httpx.ConnectError("connection refused", request=request)
        # Fresh copy so a repeated step is never sent twice
        return httpx.Response(step.status_code, headers=step.headers, content=step.content)

    def prompt(self, index: int = -1) -> str:
        """Prompt text sent in the given request."""
        body = json.loads(self.requests[index].content)
        return body["input"]["messages"][0]["content"]


def make_client(config: Config, endpoint: ScriptedEndpoint) -> QwenClient:
    return QwenClient(config, httpx.AsyncClient(transport=httpx.MockTransport(endpoint)))


@pytest.fixture
def endpoint() -> ScriptedEndpoint:
    return ScriptedEndpoint(ok_response("## 错误原因\n空指针异常"))


@pytest.fixture
def analyzer(test_config: Config, store: SessionStore, endpoint: ScriptedEndpoint) -> LogAnalyzer:
    return LogAnalyzer(test_config, store, make_client(test_config, endpoint))
