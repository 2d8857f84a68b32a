"""Tests for the completion endpoint client."""

import asyncio
import json

import httpx
import pytest

from src.config import Config
from src.services.qwen_client import QwenClient, build_payload, extract_text, truncate
from src.services.results import ProtocolFailure, Success, TransportFailure
from tests.conftest import API_URL, ScriptedEndpoint, make_client, ok_response


def test_build_payload():
    """Test request body matches the text generation API."""
    payload = build_payload("qwen-turbo", "analyze this")

    assert payload == {
        "model": "qwen-turbo",
        "input": {"messages": [{"role": "user", "content": "analyze this"}]},
        "parameters": {"result_format": "text", "temperature": 0.2, "top_p": 0.7},
    }


@pytest.mark.parametrize(
    "data, expected",
    [
        ({"output": {"text": "  answer \n"}}, "answer"),
        ({"output": {"text": ""}}, ""),
        ({"output": {"choices": []}}, None),
        ({"output": {"text": 42}}, None),
        ({"output": "text"}, None),
        ({"code": "InvalidApiKey"}, None),
        ([], None),
    ],
)
def test_extract_text(data, expected):
    assert extract_text(data) == expected


def test_truncate():
    assert truncate("short") == "short"
    assert truncate(None) is None
    assert truncate("x" * 250).startswith("x" * 200)
    assert truncate("x" * 250).endswith("...[truncated]")


@pytest.mark.asyncio
async def test_complete_success(test_config):
    endpoint = ScriptedEndpoint(ok_response("\n## 错误原因\n空指针  "))
    client = make_client(test_config, endpoint)

    outcome = await client.complete("prompt text")

    assert outcome == Success(text="## 错误原因\n空指针")
    request = endpoint.requests[0]
    assert str(request.url) == API_URL
    assert request.headers["Authorization"] == "Bearer test-key"
    assert request.headers["Content-Type"] == "application/json"
    assert json.loads(request.content)["input"]["messages"][0]["content"] == "prompt text"


@pytest.mark.asyncio
async def test_complete_retries_then_succeeds(test_config):
    """Test two failures followed by a success with retry_count=2."""
    endpoint = ScriptedEndpoint(
        httpx.Response(503),
        "connect_error",
        ok_response("fixed"),
    )
    client = make_client(test_config, endpoint)

    outcome = await client.complete("prompt")

    assert isinstance(outcome, Success)
    assert outcome.text == "fixed"
    assert len(endpoint.requests) == 3


@pytest.mark.asyncio
async def test_complete_gives_up_after_retries(test_config):
    endpoint = ScriptedEndpoint(httpx.Response(500))
    client = make_client(test_config, endpoint)

    outcome = await client.complete("prompt")

    assert isinstance(outcome, TransportFailure)
    assert outcome.status_code == 500
    assert outcome.code == 500
    assert outcome.message == "remote call failed"
    assert len(endpoint.requests) == 3


@pytest.mark.asyncio
async def test_complete_without_retries():
    config = Config(api_key="k", api_url=API_URL, retry_count=0, retry_delay=0.0)
    endpoint = ScriptedEndpoint("connect_error")
    client = make_client(config, endpoint)

    outcome = await client.complete("prompt")

    assert isinstance(outcome, TransportFailure)
    assert outcome.status_code is None
    assert "ConnectError" in outcome.detail
    assert len(endpoint.requests) == 1


@pytest.mark.asyncio
async def test_slow_attempt_is_cut_off_and_retried():
    """Each attempt is bounded as a whole, not just per read or write step."""
    config = Config(
        api_key="k", api_url=API_URL, retry_count=1, retry_delay=0.0, request_timeout=0.05
    )
    requests = []

    async def slow_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        await asyncio.sleep(1)
        return ok_response("too late")

    client = QwenClient(config, httpx.AsyncClient(transport=httpx.MockTransport(slow_handler)))

    outcome = await client.complete("prompt")

    assert isinstance(outcome, TransportFailure)
    assert outcome.status_code is None
    assert "TimeoutError" in outcome.detail
    assert len(requests) == 2


@pytest.mark.asyncio
async def test_malformed_response_is_not_retried(test_config):
    endpoint = ScriptedEndpoint(httpx.Response(200, json={"output": {"finish_reason": "stop"}}))
    client = make_client(test_config, endpoint)

    outcome = await client.complete("prompt")

    assert isinstance(outcome, ProtocolFailure)
    assert outcome.message == "malformed remote response"
    assert len(endpoint.requests) == 1


@pytest.mark.asyncio
async def test_non_json_response_is_protocol_failure(test_config):
    endpoint = ScriptedEndpoint(httpx.Response(200, text="<html>gateway</html>"))
    client = make_client(test_config, endpoint)

    outcome = await client.complete("prompt")

    assert isinstance(outcome, ProtocolFailure)
    assert len(endpoint.requests) == 1


@pytest.mark.asyncio
async def test_blank_output_text_is_protocol_failure(test_config):
    endpoint = ScriptedEndpoint(ok_response("   \n"))
    client = make_client(test_config, endpoint)

    outcome = await client.complete("prompt")

    assert isinstance(outcome, ProtocolFailure)
    assert outcome.detail == "empty output.text"


@pytest.mark.asyncio
async def test_cancel_during_retry_delay_propagates():
    """Test cancellation while waiting between attempts is re-raised, not swallowed."""
    config = Config(api_key="k", api_url=API_URL, retry_count=2, retry_delay=10.0)
    endpoint = ScriptedEndpoint(httpx.Response(502))
    client = make_client(config, endpoint)

    task = asyncio.create_task(client.complete("prompt"))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert len(endpoint.requests) == 1


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open(test_config):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(ScriptedEndpoint(ok_response("x"))))
    client = QwenClient(test_config, http_client)
    await client.aclose()

    assert not http_client.is_closed
    await http_client.aclose()
