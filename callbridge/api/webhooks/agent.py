"""ElevenLabs agent webhook endpoints."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError

from callbridge.core.config import settings
from callbridge.core.container import ServiceContainer
from callbridge.core.dependencies import get_services
from callbridge.services.conversation.initiation import (
    INITIATION_REQUEST_TYPE,
    ConversationInitiationRequest,
    ConversationInitiationResolver,
    empty_response,
    verify_signature,
)
from callbridge.services.conversation.tools import ToolCallRequest

router = APIRouter()
logger = logging.getLogger(__name__)


def check_agent_signature(body: bytes, signature: str) -> None:
    """Enforce the webhook HMAC in production when a secret is configured."""
    if not settings.is_production:
        return
    if not settings.elevenlabs_webhook_secret:
        logger.warning("[CONVERSATION INIT] ELEVENLABS_WEBHOOK_SECRET not set; skipping signature check")
        return
    if not verify_signature(body, signature, settings.elevenlabs_webhook_secret):
        logger.warning("[CONVERSATION INIT] Invalid webhook signature")
        raise HTTPException(status_code=401, detail="Invalid signature")


@router.post("/elevenlabs/conversation-initiation")
async def handle_conversation_initiation(
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    """
    Return per-tenant dynamic variables and config overrides for a new conversation.

    The payload is returned bare, as the agent expects it.
    """
    body = await request.body()
    check_agent_signature(body, request.headers.get("X-ElevenLabs-Signature", ""))

    try:
        payload = ConversationInitiationRequest.model_validate_json(body)
    except ValidationError as e:
        logger.warning(f"[CONVERSATION INIT] Unparseable request body: {str(e)}")
        return ConversationInitiationResolver.minimal_response()

    if payload.type and payload.type != INITIATION_REQUEST_TYPE:
        logger.info(f"[CONVERSATION INIT] Ignoring webhook type: {payload.type}")
        return empty_response()

    return await services.initiation.resolve(payload)


@router.post("/elevenlabs/tool-call")
async def handle_tool_call(
    payload: ToolCallRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Run a read-only tenant tool for the agent."""
    logger.info(f"[TOOL CALL] Received tool call: {payload.tool_name}")
    return await services.tools.handle(payload)
