"""HTTP client for the DashScope (Qwen) text generation endpoint."""

import asyncio
import logging
from typing import Any

import httpx

from src.config import Config
from src.services.results import CompletionOutcome, ProtocolFailure, Success, TransportFailure

logger = logging.getLogger(__name__)

TEMPERATURE = 0.2
TOP_P = 0.7
LOG_PREVIEW_CHARS = 200


def truncate(content: str | None, limit: int = LOG_PREVIEW_CHARS) -> str | None:
    """Shorten long content for log lines."""
    if content is None or len(content) <= limit:
        return content
    return content[:limit] + "...[truncated]"


def build_payload(model: str, prompt: str) -> dict[str, Any]:
    """Build the generation request body for a single user prompt."""
    return {
        "model": model,
        "input": {"messages": [{"role": "user", "content": prompt}]},
        "parameters": {
            "result_format": "text",
            "temperature": TEMPERATURE,
            "top_p": TOP_P,
        },
    }


def extract_text(data: Any) -> str | None:
    """Pull ``output.text`` out of a response body, or None if it is missing."""
    if not isinstance(data, dict):
        return None
    output = data.get("output")
    if not isinstance(output, dict):
        return None
    text = output.get("text")
    if not isinstance(text, str):
        return None
    return text.strip()


class QwenClient:
    """Calls the completion endpoint with a fixed-delay retry.

    Non-2xx statuses and transport errors are retried ``config.retry_count``
    times; a 2xx response that lacks ``output.text`` is returned immediately.
    """

    def __init__(self, config: Config, http_client: httpx.AsyncClient | None = None):
        self._config = config
        self._http_client = http_client
        self._owns_client = http_client is None

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    self._config.request_timeout, connect=self._config.connect_timeout
                )
            )
        return self._http_client

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }

    async def complete(self, prompt: str, trace_id: str = "-") -> CompletionOutcome:
        """Send a prompt and return the model's trimmed answer as an outcome.

        Raises:
            asyncio.CancelledError: If the caller cancels during an attempt or
                while waiting between attempts.
        """
        payload = build_payload(self._config.model, prompt)
        attempts = self._config.retry_count + 1
        failure: TransportFailure | None = None

        for attempt in range(1, attempts + 1):
            try:
                response = await asyncio.wait_for(
                    self._client().post(self._config.api_url, json=payload, headers=self._headers()),
                    timeout=self._config.request_timeout,
                )
            except (httpx.HTTPError, asyncio.TimeoutError) as e:
                failure = TransportFailure(detail=f"{type(e).__name__}: {e}")
                logger.warning(
                    f"[{trace_id}] Completion request failed ({failure.detail}), "
                    f"attempt {attempt}/{attempts}"
                )
            else:
                if response.is_success:
                    return self._parse(response, trace_id)
                failure = TransportFailure(
                    detail=f"HTTP {response.status_code}", status_code=response.status_code
                )
                logger.warning(
                    f"[{trace_id}] Completion endpoint returned {response.status_code}, "
                    f"attempt {attempt}/{attempts}"
                )

            if attempt < attempts:
                try:
                    await asyncio.sleep(self._config.retry_delay)
                except asyncio.CancelledError:
                    logger.error(f"[{trace_id}] Retry interrupted after attempt {attempt}")
                    raise

        logger.error(f"[{trace_id}] Completion failed after {attempts} attempt(s): {failure.detail}")
        return failure

    def _parse(self, response: httpx.Response, trace_id: str) -> CompletionOutcome:
        logger.debug(f"[{trace_id}] Raw completion response: {truncate(response.text)}")
        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"[{trace_id}] Completion response is not JSON: {e}")
            return ProtocolFailure(detail="response body is not JSON")

        text = extract_text(data)
        if text is None:
            logger.error(
                f"[{trace_id}] Completion response has no output.text: {truncate(response.text)}"
            )
            return ProtocolFailure(detail="missing output.text")
        if not text:
            logger.error(f"[{trace_id}] Completion response has empty output.text")
            return ProtocolFailure(detail="empty output.text")
        return Success(text=text)
