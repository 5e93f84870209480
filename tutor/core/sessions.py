"""In-memory conversation sessions with a fixed time-to-live.

Request handlers (threadpool) and the sweeper (event loop) share one store, so
every operation takes the registry lock. Nothing checks staleness on read: the
periodic sweep is the only thing that expires sessions.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional


logger = logging.getLogger("sprachpartner.sessions")

ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class Message:
    role: str
    content: str

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")


@dataclass
class ConversationSession:
    id: str
    unit_number: int
    created_at: float
    messages: List[Message] = field(default_factory=list)


class SessionRegistry:
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, ConversationSession] = {}
        self._lock = threading.Lock()

    def create(self, unit_number: int, messages: Iterable[Message] = ()) -> str:
        session = ConversationSession(
            id=uuid.uuid4().hex,
            unit_number=unit_number,
            created_at=self._clock(),
            messages=list(messages),
        )
        with self._lock:
            self._sessions[session.id] = session
        return session.id

    def get(self, session_id: str) -> Optional[ConversationSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def history(self, session_id: str) -> Optional[List[Message]]:
        """Snapshot of the session's messages, or None when it is gone."""
        with self._lock:
            session = self._sessions.get(session_id)
            return list(session.messages) if session else None

    def append_turn(self, session_id: str, user_text: str, reply: str) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.messages.extend(
                (Message("user", user_text), Message("assistant", reply))
            )
            return True

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def sweep_once(self, now: Optional[float] = None) -> int:
        if now is None:
            now = self._clock()
        with self._lock:
            expired = [
                sid
                for sid, session in self._sessions.items()
                if now - session.created_at >= self.ttl_seconds
            ]
            for sid in expired:
                del self._sessions[sid]
        if expired:
            logger.info("Expired %s conversation(s), %s active", len(expired), len(self))
        return len(expired)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


async def run_sweeper(registry: SessionRegistry, interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            registry.sweep_once()
        except Exception:
            logger.exception("Session sweep failed, retrying in %ss", interval_seconds)
