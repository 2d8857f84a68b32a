"""In-memory conversation history store.

Sessions live only in this process. For multiple instances, consider using
Redis or a database.
"""

import asyncio
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MAX_ROUNDS = 3  # one round = user message + assistant reply
MAX_SESSIONS = 100
SESSION_TTL = timedelta(minutes=30)
SWEEP_INTERVAL_SECONDS = 60.0

CONTEXT_HEADER = "【历史对话上下文】\n"
CURRENT_REQUEST_MARKER = "【当前分析请求】\n"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Author of a conversation message."""

    USER = "user"
    ASSISTANT = "assistant"

    @property
    def label(self) -> str:
        return "用户：" if self is Role.USER else "AI分析："


@dataclass(frozen=True)
class Message:
    """Single conversation turn."""

    role: Role
    text: str
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        if not self.text:
            raise ValueError("Message text must not be empty")

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(Role.USER, text)

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(Role.ASSISTANT, text)


@dataclass
class Session:
    """Bounded conversation history for one session id."""

    id: str
    history: list[Message] = field(default_factory=list)
    last_active_at: datetime = field(default_factory=_utcnow)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add_message(self, message: Message, now: Optional[datetime] = None) -> None:
        """Append a message and keep only the most recent MAX_ROUNDS rounds."""
        self.add_messages(message, now=now)

    def add_messages(self, *messages: Message, now: Optional[datetime] = None) -> None:
        """Append several messages adjacently, in order, then trim."""
        with self._lock:
            self.history.extend(messages)
            self.last_active_at = now or _utcnow()
            overflow = len(self.history) - 2 * MAX_ROUNDS
            if overflow > 0:
                del self.history[:overflow]

    def messages(self) -> list[Message]:
        """Snapshot of the history, oldest first."""
        with self._lock:
            return list(self.history)

    def build_context_text(self) -> str:
        """Render the history as a prompt prefix; empty on the first round."""
        history = self.messages()
        if not history:
            return ""
        lines = [CONTEXT_HEADER]
        for message in history:
            lines.append(f"{message.role.label}{message.text}\n")
        lines.append(CURRENT_REQUEST_MARKER)
        return "".join(lines)


def generate_session_id() -> str:
    """Create a fresh session id from the current time and a random suffix."""
    return f"SESSION_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class SessionStore:
    """Capacity-bounded, expiring map of session id -> Session.

    Mutations of the mapping are serialized by a single short-lived lock.
    Appends hold it while writing into the mapped session, so a concurrent
    sweep or clear cannot detach the session mid-write.
    """

    def __init__(
        self,
        max_sessions: int = MAX_SESSIONS,
        ttl: timedelta = SESSION_TTL,
        sweep_interval: float = SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if max_sessions < 1:
            raise ValueError("max_sessions must be >= 1")
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()
        self._max_sessions = max_sessions
        self._ttl = ttl
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._sweep_task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[Session]:
        """Get a session without creating it."""
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: Optional[str] = None) -> Session:
        """Get the session for an id, creating it (and evicting if full) when unknown.

        A blank id always creates a new session with a generated id.
        """
        with self._lock:
            return self._get_or_insert(session_id)

    def _get_or_insert(self, session_id: Optional[str]) -> Session:
        # Caller holds self._lock.
        if not session_id or not session_id.strip():
            session_id = generate_session_id()
        session = self._sessions.get(session_id)
        if session is not None:
            return session
        if len(self._sessions) >= self._max_sessions:
            self._evict_oldest()
        session = Session(id=session_id, last_active_at=self._clock())
        self._sessions[session_id] = session
        logger.debug(f"Created session {session_id} ({len(self._sessions)} active)")
        return session

    def append(self, session_id: str, *messages: Message) -> Session:
        """Add messages to a session in order, as one adjacent group.

        The messages always land in the session currently mapped to the id.
        Lock order is store, then session.
        """
        with self._lock:
            session = self._get_or_insert(session_id)
            session.add_messages(*messages, now=self._clock())
        return session

    def clear(self, session_id: str) -> bool:
        """Drop a session. Returns True if it existed."""
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def _evict_oldest(self) -> None:
        # Linear scan, O(n) per insert at capacity.
        oldest = min(self._sessions.values(), key=lambda s: s.last_active_at, default=None)
        if oldest is not None:
            del self._sessions[oldest.id]
            logger.info(f"Session limit {self._max_sessions} reached, evicted {oldest.id}")

    def sweep(self) -> int:
        """Remove sessions idle longer than the TTL. Returns the number removed."""
        cutoff = self._clock() - self._ttl
        expired = [s.id for s in list(self._sessions.values()) if s.last_active_at < cutoff]
        removed = 0
        for session_id in expired:
            with self._lock:
                session = self._sessions.get(session_id)
                # Skip sessions touched since the snapshot was taken
                if session is not None and session.last_active_at < cutoff:
                    del self._sessions[session_id]
                    removed += 1
        if removed:
            logger.info(f"Swept {removed} expired session(s), {len(self._sessions)} remaining")
        return removed

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}", exc_info=True)

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())
        logger.info(f"Session sweep started (every {self._sweep_interval:.0f}s, ttl {self._ttl})")

    async def shutdown(self) -> None:
        """Stop the periodic sweep. Stored sessions are left as they are."""
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Session sweep stopped")
