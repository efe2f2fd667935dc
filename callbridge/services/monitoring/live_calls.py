"""Live call updates for dashboard WebSocket clients."""
import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from callbridge.services.call_session.registry import SessionRegistry

logger = logging.getLogger(__name__)

CALL_LIST = "call_list"
CALL_STARTED = "call_started"
CALL_ENDED = "call_ended"
TRANSCRIPT = "transcript"

# a dashboard that cannot take an update within this many seconds is dropped
SEND_TIMEOUT_SECONDS = 2.0


class MonitorClient:
    """Dashboard connection with an optional tenant filter."""

    def __init__(self, websocket: Any, tenant_id: Optional[str] = None):
        self.websocket = websocket
        self.tenant_id = tenant_id

    def wants(self, tenant_id: Optional[str]) -> bool:
        return self.tenant_id is None or self.tenant_id == tenant_id


class LiveCallMonitor:
    """Broadcasts call start, transcript and end events to connected dashboard clients."""

    def __init__(self, registry: SessionRegistry, send_timeout: float = SEND_TIMEOUT_SECONDS):
        self.registry = registry
        self.send_timeout = send_timeout
        self.clients: List[MonitorClient] = []

    def active_calls(self, tenant_id: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            session.summary()
            for session in self.registry.active_sessions()
            if tenant_id is None or session.tenant_id == tenant_id
        ]

    async def add_client(self, websocket: Any, tenant_id: Optional[str] = None) -> MonitorClient:
        """Register a client and send it the current call list."""
        client = MonitorClient(websocket, tenant_id)
        self.clients.append(client)
        logger.info(
            f"[LIVE CALLS] Client connected. Total: {len(self.clients)}"
            + (f" (tenant: {tenant_id})" if tenant_id else "")
        )
        await self._send(client, CALL_LIST, {"active_calls": self.active_calls(tenant_id)})
        return client

    def remove_client(self, client: MonitorClient) -> None:
        if client in self.clients:
            self.clients.remove(client)
            logger.info(f"[LIVE CALLS] Client disconnected. Total: {len(self.clients)}")

    async def call_started(self, summary: Dict[str, Any]) -> None:
        await self._broadcast(CALL_STARTED, summary)

    async def transcript_update(
        self,
        call_sid: Optional[str],
        tenant_id: Optional[str],
        role: str,
        content: str,
    ) -> None:
        """Publish one conversation turn. Role is "user" or "assistant"."""
        await self._broadcast(
            TRANSCRIPT,
            {"call_sid": call_sid, "tenant_id": tenant_id, "role": role, "content": content},
        )

    async def call_ended(self, summary: Dict[str, Any], duration: Optional[int] = None) -> None:
        data = dict(summary)
        data["status"] = "completed"
        if duration is not None:
            data["duration"] = duration
        await self._broadcast(CALL_ENDED, data)

    async def _broadcast(self, update_type: str, data: Dict[str, Any]) -> None:
        targets = [client for client in list(self.clients) if client.wants(data.get("tenant_id"))]
        if targets:
            await asyncio.gather(*(self._send(client, update_type, data) for client in targets))

    async def _send(self, client: MonitorClient, update_type: str, data: Dict[str, Any]) -> None:
        update = {
            "type": update_type,
            "call_sid": data.get("call_sid", "system"),
            "timestamp": datetime.utcnow().isoformat(),
            "data": data,
        }
        try:
            await asyncio.wait_for(client.websocket.send_text(json.dumps(update)), timeout=self.send_timeout)
        except Exception as e:
            logger.warning(f"[LIVE CALLS] Dropping client after send error: {type(e).__name__}: {str(e)}")
            self.remove_client(client)

    async def close_all(self) -> None:
        """Close every client connection. Used during shutdown."""
        clients, self.clients = self.clients, []
        for client in clients:
            try:
                await client.websocket.close(code=1001, reason="Server shutting down")
            except Exception as e:
                logger.debug(f"[LIVE CALLS] Error closing client: {e}")
        logger.info(f"[LIVE CALLS] Closed {len(clients)} client connection(s)")
