"""Multi-round Java exception log analysis.

The first round of a session must be a Java exception log and is answered
with a fixed cause / fix / prevention layout. Later rounds are free-form
follow-up questions answered briefly, with the recent history prepended to
the prompt.
"""

import asyncio
import logging
import re
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from src.config import Config
from src.prompts import render_prompt
from src.services.conversation_store import Message, SessionStore
from src.services.qwen_client import QwenClient, truncate
from src.services.results import (
    InternalFailure,
    InvalidInput,
    Outcome,
    RetryInterrupted,
    Success,
)

logger = logging.getLogger(__name__)

# Every first-round input has to look like a Java exception log
LOG_MARKER = "java.lang."

_MULTI_NEWLINE = re.compile(r"\n{3,}")
_MULTI_SPACE = re.compile(r" {2,}")


def normalize_response(text: str) -> str:
    """Collapse runs of 3+ newlines to 2 and runs of 2+ spaces to 1."""
    text = _MULTI_NEWLINE.sub("\n\n", text)
    return _MULTI_SPACE.sub(" ", text)


def new_trace_id() -> str:
    return f"TRACE_{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}"


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of one analysis plus the session it was resolved against."""

    outcome: Outcome
    session_id: Optional[str] = None

    @property
    def code(self) -> int:
        return self.outcome.code

    @property
    def message(self) -> str:
        return self.outcome.message

    @property
    def analysis_result(self) -> Optional[str]:
        if isinstance(self.outcome, Success):
            return self.outcome.text
        return None

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Success)


class LogAnalyzer:
    """Runs one analysis round against the completion endpoint."""

    def __init__(self, config: Config, store: SessionStore, client: QwenClient):
        self._config = config
        self._store = store
        self._client = client

    def build_prompt(self, text: str, context: str) -> str:
        """Build the final prompt; an empty context means a first round."""
        if not context:
            return render_prompt(self._config.first_round_prompt, text)
        return context + render_prompt(self._config.follow_up_prompt, text)

    async def analyze(self, text: Optional[str], session_id: Optional[str] = None) -> AnalysisResult:
        """Analyze a log (first round) or answer a follow-up question.

        Never raises for request-level problems: every failure comes back as
        an AnalysisResult carrying a 400 or 500 code.
        """
        trace_id = new_trace_id()
        started = time.perf_counter()
        logger.info(f"[{trace_id}] Analysis request, session={session_id}, input={truncate(text)!r}")

        try:
            result = await self._analyze(text, session_id, trace_id)
        except Exception as e:
            logger.error(f"[{trace_id}] Analysis failed unexpectedly: {e}", exc_info=True)
            result = AnalysisResult(InternalFailure(detail=str(e)), session_id)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"[{trace_id}] Analysis finished, code={result.code}, "
            f"session={result.session_id}, {elapsed_ms:.0f}ms"
        )
        return result

    async def _analyze(self, text: Optional[str], session_id: Optional[str], trace_id: str) -> AnalysisResult:
        if not text or not text.strip():
            logger.warning(f"[{trace_id}] Empty input")
            return AnalysisResult(InvalidInput("empty input"), session_id)
        clean = text.strip()

        session = self._store.get_or_create(session_id)
        context = session.build_context_text()
        first_round = not context
        logger.debug(
            f"[{trace_id}] Session {session.id}: {'first round' if first_round else 'follow-up'}"
        )

        if first_round and LOG_MARKER not in clean:
            logger.warning(f"[{trace_id}] First-round input is not a Java exception log")
            return AnalysisResult(InvalidInput("invalid format"), session.id)

        prompt = self.build_prompt(clean, context)
        logger.debug(f"[{trace_id}] Prompt length {len(prompt)} chars")

        try:
            outcome = await asyncio.wait_for(
                self._client.complete(prompt, trace_id), timeout=self._config.total_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"[{trace_id}] Gave up after {self._config.total_timeout:.1f}s budget")
            return AnalysisResult(
                RetryInterrupted(detail=f"exceeded {self._config.total_timeout:.1f}s budget"),
                session.id,
            )

        if not isinstance(outcome, Success):
            return AnalysisResult(outcome, session.id)

        answer = normalize_response(outcome.text)
        self._store.append(session.id, Message.user(clean), Message.assistant(answer))
        logger.info(f"[{trace_id}] Analysis succeeded, {len(answer)} chars")
        return AnalysisResult(Success(answer), session.id)
