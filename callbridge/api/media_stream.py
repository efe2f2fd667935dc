"""Media stream WebSocket endpoint for Twilio."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket

from callbridge.core.container import ServiceContainer
from callbridge.core.dependencies import get_services
from callbridge.services.telephony.twiml import MEDIA_STREAM_PATH

router = APIRouter()
logger = logging.getLogger(__name__)

# RFC 6455 "Try Again Later"
CLOSE_TRY_AGAIN_LATER = 1013


@router.websocket(MEDIA_STREAM_PATH)
async def media_stream(
    websocket: WebSocket,
    agent_id: Optional[str] = Query(None),
    tenant_id: Optional[str] = Query(None),
    call_id: Optional[str] = Query(None),
    services: ServiceContainer = Depends(get_services),
):
    """Bridge a Twilio media stream to the tenant's voice agent."""
    await websocket.accept()

    if services.shutdown.is_draining:
        logger.warning(f"[MEDIA STREAM] Server is draining; rejecting stream for call {call_id}")
        await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason="Server shutting down")
        return

    await services.bridge.handle_connection(websocket, agent_id=agent_id, tenant_id=tenant_id, call_id=call_id)
