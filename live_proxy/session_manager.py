"""
Session Manager for the Gemini Live Proxy

Tracks one session record per browser WebSocket connection. Each record maps
the connection's session id to its mode and upstream handle (a Live API
session, a chat, or nothing for the playground).
"""

import asyncio
import inspect
import itertools
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from live_proxy.transcript import Transcript

logger = logging.getLogger(__name__)


class SessionMode(str, Enum):
    VOICE = "voice"
    TEXT = "text"
    STT = "stt"
    PLAYGROUND = "playground"

    @classmethod
    def parse(cls, value: Optional[str], default: "SessionMode" = None) -> "SessionMode":
        """Parse a mode string, falling back to the default for unknown values."""
        default = default or cls.VOICE
        if not value:
            return default
        try:
            return cls(value.strip().lower())
        except ValueError:
            logger.warning(f"Unknown mode '{value}', falling back to '{default.value}'")
            return default


@dataclass
class SessionRecord:
    """State for one browser connection"""
    session_id: str
    mode: SessionMode
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    handle: Optional[Any] = None
    transcript: Transcript = field(default_factory=Transcript)
    messages_in: int = 0
    messages_out: int = 0

    def summary(self) -> Dict[str, Any]:
        now = time.time()
        return {
            "session_id": self.session_id,
            "mode": self.mode.value,
            "age_seconds": now - self.created_at,
            "idle_seconds": now - self.last_activity,
            "upstream_attached": self.handle is not None,
            "messages_in": self.messages_in,
            "messages_out": self.messages_out,
            "transcript_entries": len(self.transcript),
        }


async def _close_handle(handle: Any) -> None:
    closer = getattr(handle, "close", None) or getattr(handle, "aclose", None)
    if closer is None:
        return
    result = closer()
    if inspect.isawaitable(result):
        await result


class SessionManager:
    """
    In-memory connection-id to session map.

    At most one record exists per open socket; records are removed on
    disconnect regardless of mode or upstream state.
    """

    def __init__(self):
        self.active_sessions: Dict[str, SessionRecord] = {}
        self._lock = asyncio.Lock()
        self._counter = itertools.count(1)
        self.total_created = 0

    def _new_session_id(self) -> str:
        # Millisecond timestamp plus a counter so simultaneous connects never collide
        return f"{int(time.time() * 1000)}-{next(self._counter)}"

    async def create(self, mode: SessionMode, handle: Any = None) -> SessionRecord:
        """
        Create a session record for a new connection.

        Args:
            mode: Session kind selected by the client
            handle: Upstream handle, if already available

        Returns:
            SessionRecord: New session state
        """
        async with self._lock:
            session_id = self._new_session_id()
            record = SessionRecord(session_id=session_id, mode=mode, handle=handle)
            self.active_sessions[session_id] = record
            self.total_created += 1
            logger.info(f"Created {mode.value} session: {session_id}")
            return record

    async def attach(self, session_id: str, handle: Any) -> bool:
        """Attach the upstream handle once setup has produced one."""
        async with self._lock:
            record = self.active_sessions.get(session_id)
            if record is None:
                return False
            record.handle = handle
            return True

    def get(self, session_id: str) -> Optional[SessionRecord]:
        return self.active_sessions.get(session_id)

    def touch(self, session_id: str, inbound: bool = True) -> None:
        """Update activity timestamp and message counters."""
        record = self.active_sessions.get(session_id)
        if record is None:
            return
        record.last_activity = time.time()
        if inbound:
            record.messages_in += 1
        else:
            record.messages_out += 1

    async def close(self, session_id: str) -> bool:
        """
        Remove a session and close its upstream handle.

        Returns:
            bool: True if a session was removed
        """
        async with self._lock:
            record = self.active_sessions.pop(session_id, None)
        if record is None:
            return False

        if record.handle is not None:
            try:
                await _close_handle(record.handle)
            except Exception as e:
                logger.error(f"Error closing upstream handle for session {session_id}: {e}")

        logger.info(f"Closed {record.mode.value} session: {session_id}")
        return True

    async def close_all(self) -> int:
        closed = 0
        for session_id in list(self.active_sessions):
            if await self.close(session_id):
                closed += 1
        return closed

    def list(self) -> List[Dict[str, Any]]:
        return [record.summary() for record in self.active_sessions.values()]

    def stats(self) -> Dict[str, Any]:
        by_mode: Dict[str, int] = {mode.value: 0 for mode in SessionMode}
        for record in self.active_sessions.values():
            by_mode[record.mode.value] += 1
        return {
            "active_sessions": len(self.active_sessions),
            "total_created": self.total_created,
            "by_mode": by_mode,
        }

    def __len__(self) -> int:
        return len(self.active_sessions)
