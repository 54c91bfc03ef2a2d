"""Browser-session scoped key/value storage.

Values live in process memory keyed by the caller's session id, so they
survive page reloads and navigation but not an application restart.
Drafts can hold personal data, so sessions left idle past the timeout are
purged and ``end_session`` drops everything for a session at once.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class SessionStorage(ABC):
    """String key/value storage partitioned by session id."""

    @abstractmethod
    async def get_item(self, session_id: str, key: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set_item(self, session_id: str, key: str, value: str) -> None:
        pass

    @abstractmethod
    async def remove_item(self, session_id: str, key: str) -> None:
        pass

    @abstractmethod
    async def end_session(self, session_id: str) -> None:
        pass

    def add_expiry_listener(self, listener: Callable[[str], None]) -> None:
        """Call ``listener`` with the id of every session this storage expires.

        Storages that never expire sessions ignore listeners.
        """


@dataclass
class _Session:
    last_seen: float
    items: Dict[str, str] = field(default_factory=dict)


class InMemorySessionStorage(SessionStorage):
    """Session storage held in the application process."""

    def __init__(
        self,
        idle_timeout_seconds: float = 8 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.idle_timeout_seconds = idle_timeout_seconds
        self._clock = clock
        self._sessions: Dict[str, _Session] = {}
        self._expiry_listeners: List[Callable[[str], None]] = []

    def add_expiry_listener(self, listener: Callable[[str], None]) -> None:
        self._expiry_listeners.append(listener)

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if now - session.last_seen > self.idle_timeout_seconds
        ]
        for session_id in expired:
            del self._sessions[session_id]
            for listener in self._expiry_listeners:
                listener(session_id)
        if expired:
            LOGGER.info("Purged idle sessions", extra={"count": len(expired)})

    def _touch(self, session_id: str, create: bool) -> Optional[_Session]:
        self._purge_expired()
        session = self._sessions.get(session_id)
        if session is None and create:
            session = _Session(last_seen=self._clock())
            self._sessions[session_id] = session
        if session is not None:
            session.last_seen = self._clock()
        return session

    async def get_item(self, session_id: str, key: str) -> Optional[str]:
        session = self._touch(session_id, create=False)
        return session.items.get(key) if session else None

    async def set_item(self, session_id: str, key: str, value: str) -> None:
        self._touch(session_id, create=True).items[key] = value

    async def remove_item(self, session_id: str, key: str) -> None:
        session = self._touch(session_id, create=False)
        if session is not None:
            session.items.pop(key, None)

    async def end_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    @property
    def session_count(self) -> int:
        return len(self._sessions)
