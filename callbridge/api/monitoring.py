"""Live call monitoring WebSocket endpoint."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from callbridge.api.media_stream import CLOSE_TRY_AGAIN_LATER
from callbridge.core.container import ServiceContainer
from callbridge.core.dependencies import get_services

router = APIRouter()
logger = logging.getLogger(__name__)


@router.websocket("/ws/live-calls")
async def live_calls(
    websocket: WebSocket,
    tenant_id: Optional[str] = Query(None),
    services: ServiceContainer = Depends(get_services),
):
    """Push call_list, call_started and call_ended updates to a dashboard client."""
    await websocket.accept()

    if services.shutdown.is_draining:
        await websocket.close(code=CLOSE_TRY_AGAIN_LATER, reason="Server shutting down")
        return

    client = await services.monitor.add_client(websocket, tenant_id)
    try:
        while True:
            # inbound messages are ignored; the loop only watches for disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    except RuntimeError as e:
        logger.debug(f"[LIVE CALLS] Client socket closed: {e}")
    finally:
        services.monitor.remove_client(client)
