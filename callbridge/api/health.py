"""Health check endpoint."""
import logging

from fastapi import APIRouter, Depends, Request

from callbridge.core.container import ServiceContainer
from callbridge.core.dependencies import get_services

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check(request: Request, services: ServiceContainer = Depends(get_services)):
    """Health check endpoint."""
    logger.debug(
        f"[HEALTH] Health check requested - Client: {request.client.host if request.client else 'unknown'}"
    )
    return {
        "status": "draining" if services.shutdown.is_draining else "healthy",
        "active_sessions": services.registry.count(),
        "agent_configured": services.agent_service.is_available(),
    }
