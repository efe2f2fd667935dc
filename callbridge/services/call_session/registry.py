"""Registry of active call sessions."""
import logging
import threading
from typing import Dict, List, Optional

from callbridge.services.call_session.models import CallSession

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Active call sessions keyed by carrier stream id.

    The registry only indexes sessions; each session owns its sockets. All
    map operations hold a lock for a constant-time critical section, so the
    registry can be read from the shutdown signal path as well as the event loop.
    """

    def __init__(self):
        self._sessions: Dict[str, CallSession] = {}
        self._lock = threading.Lock()

    def add(self, session: CallSession) -> bool:
        """Insert a session unless one already exists for its stream id."""
        with self._lock:
            if session.stream_sid in self._sessions:
                return False
            self._sessions[session.stream_sid] = session
            return True

    def remove(self, stream_sid: str, session: Optional[CallSession] = None) -> Optional[CallSession]:
        """
        Remove a session by stream id.

        When ``session`` is given, only that exact session is removed.
        """
        with self._lock:
            current = self._sessions.get(stream_sid)
            if current is None or (session is not None and current is not session):
                return None
            return self._sessions.pop(stream_sid)

    def get(self, stream_sid: str) -> Optional[CallSession]:
        with self._lock:
            return self._sessions.get(stream_sid)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def active_sessions(self) -> List[CallSession]:
        with self._lock:
            return list(self._sessions.values())

    async def force_terminate_all(self) -> List[str]:
        """
        Close every active session and clear the registry.

        Returns:
            Stream ids of the sessions that were terminated
        """
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()

        for session in sessions:
            logger.warning(
                f"[SESSION REGISTRY] Force terminating session {session.stream_sid} "
                f"(call {session.call_sid})"
            )
            try:
                await session.close(code=1001)
            except Exception as e:
                logger.error(
                    f"[SESSION REGISTRY] Error terminating session {session.stream_sid}: "
                    f"{type(e).__name__}: {str(e)}"
                )
        return [session.stream_sid for session in sessions]
