"""Session registry for the archive MCP gateway."""

import logging
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger("archive_mcp.mcp_gateway.session")


@dataclass
class Session:
    """A client session correlating a stream with its follow-up posts."""

    session_id: str
    created_at: float
    last_seen_at: float


class SessionRegistry:
    """Thread-safe map of session ids to sessions.

    Every read and write goes through one lock, held only for the map
    operation itself. Idle sessions are dropped after ``ttl`` seconds by a
    periodic sweep, and the least recently seen session is evicted once
    ``max_sessions`` is reached. Passing ``None`` disables either limit.
    """

    def __init__(
        self,
        ttl: float | None = None,
        max_sessions: int | None = None,
        clock: Callable[[], float] = time.time,
        cleanup_interval: float = 60.0,
    ) -> None:
        self.ttl = ttl
        self.max_sessions = max_sessions
        self._clock = clock
        self._cleanup_interval = cleanup_interval
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()
        self._last_cleanup: float = clock()

    def get_or_create(self, session_id: str | None = None) -> str:
        """Return ``session_id`` if known, otherwise mint and record a new one."""
        with self._lock:
            now = self._clock()
            self._cleanup_expired_locked(now)

            if session_id:
                session = self._sessions.get(session_id)
                if session is not None:
                    session.last_seen_at = now
                    return session_id

            new_id = str(uuid.uuid4())
            self._evict_for_capacity_locked()
            self._sessions[new_id] = Session(session_id=new_id, created_at=now, last_seen_at=now)

        logger.info("session created session_id=%s", new_id, extra={"session_id": new_id})
        return new_id

    def exists(self, session_id: str | None) -> bool:
        if not session_id:
            return False
        with self._lock:
            self._cleanup_expired_locked(self._clock())
            return session_id in self._sessions

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def delete(self, session_id: str | None) -> bool:
        """Remove a session. Deleting an unknown id is a no-op."""
        if not session_id:
            return False
        with self._lock:
            removed = self._sessions.pop(session_id, None) is not None
        if removed:
            logger.info("session closed session_id=%s", session_id, extra={"session_id": session_id})
        return removed

    def session_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _cleanup_expired_locked(self, now: float) -> None:
        if self.ttl is None:
            return
        if now - self._last_cleanup < self._cleanup_interval:
            return

        self._last_cleanup = now
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if now - session.last_seen_at >= self.ttl
        ]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.info("expired %d idle session(s)", len(expired))

    def _evict_for_capacity_locked(self) -> None:
        if self.max_sessions is None:
            return
        while len(self._sessions) >= self.max_sessions and self._sessions:
            oldest = min(self._sessions.values(), key=lambda s: s.last_seen_at)
            del self._sessions[oldest.session_id]
            logger.info("evicted session session_id=%s (capacity)", oldest.session_id)
