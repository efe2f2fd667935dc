"""Call session models."""
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)

TRANSCRIPT_PREVIEW_LENGTH = 100


class BridgeState(str, Enum):
    """Lifecycle of one media stream connection."""

    AWAIT_START = "await_start"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"


async def close_carrier_socket(websocket: Any, code: int = 1000) -> None:
    """Close a server-side WebSocket unless the close handshake already happened."""
    if getattr(websocket, "application_state", None) == WebSocketState.DISCONNECTED:
        return
    try:
        await websocket.close(code=code)
    except (RuntimeError, OSError) as e:
        # Starlette raises once the peer is gone
        logger.debug(f"[CALL SESSION] Carrier socket already closed: {e}")


async def close_agent_socket(websocket: Any, stream_sid: Optional[str] = None) -> None:
    try:
        await websocket.close()
    except Exception as e:
        logger.debug(f"[CALL SESSION] Error closing agent socket for {stream_sid}: {e}")


class CallSession:
    """One bridged call. Owns both of its sockets."""

    def __init__(
        self,
        stream_sid: str,
        ingress_socket: Any,
        call_sid: Optional[str] = None,
        tenant_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        custom_parameters: Optional[Dict[str, str]] = None,
    ):
        self.stream_sid = stream_sid
        self.call_sid = call_sid
        self.tenant_id = tenant_id
        self.agent_id = agent_id
        self.ingress_socket = ingress_socket
        self.egress_socket: Optional[Any] = None  # set once the agent handshake completes
        self.custom_parameters = custom_parameters or {}
        self.conversation_id: Optional[str] = None
        self.start_time = datetime.utcnow()
        self.turn_count = 0
        self.transcript_preview = ""
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    def attach_egress(self, websocket: Any) -> bool:
        """Attach the agent socket. Refused once the session has been closed."""
        if self._closed:
            return False
        self.egress_socket = websocket
        return True

    def record_turn(self, content: str) -> None:
        self.turn_count += 1
        if len(content) > TRANSCRIPT_PREVIEW_LENGTH:
            content = content[:TRANSCRIPT_PREVIEW_LENGTH] + "..."
        self.transcript_preview = content

    def duration_seconds(self) -> int:
        return int((datetime.utcnow() - self.start_time).total_seconds())

    def summary(self) -> Dict[str, Any]:
        """Serializable view for monitoring clients."""
        return {
            "stream_sid": self.stream_sid,
            "call_sid": self.call_sid,
            "tenant_id": self.tenant_id,
            "tenant_name": self.custom_parameters.get("tenant_name", ""),
            "caller_number": self.custom_parameters.get("caller_number") or "Unknown",
            "agent_id": self.agent_id,
            "start_time": self.start_time.isoformat(),
            "turn_count": self.turn_count,
            "transcript_preview": self.transcript_preview,
        }

    async def close(self, code: int = 1000) -> None:
        """Close both sockets. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if self.egress_socket is not None:
            await close_agent_socket(self.egress_socket, self.stream_sid)

        await close_carrier_socket(self.ingress_socket, code=code)
