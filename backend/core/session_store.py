# In core/session_store.py

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class SessionStore:
    """
    In-process conversation sessions keyed by session id.

    Sessions expire after `ttl_seconds` without access, the least recently
    used session is dropped once `max_sessions` is reached, and each history
    keeps at most `max_history_messages` entries (oldest dropped first).
    A bound of 0 disables it. Sessions whose `processing_lock` is held are
    never evicted. Nothing survives a process restart.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_sessions: int = 1000,
        max_history_messages: int = 100,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_sessions = max_sessions
        self.max_history_messages = max_history_messages
        self._clock = clock
        self._sessions: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        logger.info(
            f"SessionStore initialized (ttl={ttl_seconds}s, max_sessions={max_sessions}, "
            f"max_history={max_history_messages})."
        )

    def get(self, session_id: str) -> Optional[Dict[str, Any]]:
        self._evict_expired()
        session = self._sessions.get(session_id)
        if session is not None:
            self._touch(session)
        return session

    def create(self, session_id: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self._evict_expired()
        if self.max_sessions and session_id not in self._sessions:
            self._evict_least_recently_used()

        now = self._clock()
        session = {
            'id': session_id,
            'messages': [],
            'chat_id': None,
            'created_at': time.time(),
            'last_active': now,
            'metadata': dict(metadata or {}),
            'processing_lock': asyncio.Lock(),
        }
        self._sessions[session_id] = session
        self._sessions.move_to_end(session_id)
        return session

    def get_or_create(self, session_id: str, metadata: Optional[Dict[str, Any]] = None) -> tuple:
        """Returns (session, created)."""
        session = self.get(session_id)
        if session is not None:
            return session, False
        return self.create(session_id, metadata), True

    def append(self, session_id: str, message: Dict[str, str]) -> None:
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        messages: List[Dict[str, str]] = session['messages']
        messages.append({'role': message['role'], 'content': message['content']})
        if self.max_history_messages and len(messages) > self.max_history_messages:
            dropped = len(messages) - self.max_history_messages
            del messages[:dropped]
            logger.info(f"History capped, dropped {dropped} oldest message(s)", extra={"session_id": session_id})
        self._touch(session)

    def count(self) -> int:
        self._evict_expired()
        return len(self._sessions)

    def _touch(self, session: Dict[str, Any]) -> None:
        session['last_active'] = self._clock()
        self._sessions.move_to_end(session['id'])

    def _evict_expired(self) -> None:
        if not self.ttl_seconds:
            return
        cutoff = self._clock() - self.ttl_seconds
        # Ordered by last access, so expired sessions sit at the front.
        for session_id, session in list(self._sessions.items()):
            if session['last_active'] > cutoff:
                break
            if self._in_use(session):
                continue
            del self._sessions[session_id]
            logger.info("Session expired and removed", extra={"session_id": session_id})

    def _evict_least_recently_used(self) -> None:
        while len(self._sessions) >= self.max_sessions:
            victim_id = next(
                (sid for sid, session in self._sessions.items() if not self._in_use(session)),
                None,
            )
            if victim_id is None:
                logger.warning("Session store full but every session has a request in flight, growing past the bound")
                return
            del self._sessions[victim_id]
            logger.warning("Session store full, evicted least recently used session", extra={"session_id": victim_id})

    @staticmethod
    def _in_use(session: Dict[str, Any]) -> bool:
        return session['processing_lock'].locked()
