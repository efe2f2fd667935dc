"""Conversation initiation webhook handling."""
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel

from callbridge.services.agent.protocol import audio_format_override
from callbridge.services.conversation.persona import build_persona_prompt
from callbridge.services.tenants.business_hours import format_business_hours
from callbridge.services.tenants.resolver import TenantPhoneResolver

logger = logging.getLogger(__name__)

INITIATION_REQUEST_TYPE = "conversation_initiation_client_data"
DEFAULT_BUSINESS_NAME = "Our Business"


class ConversationInitiationRequest(BaseModel):
    """Payload the agent posts when a conversation starts."""

    type: Optional[str] = None
    conversation_id: Optional[str] = None
    agent_id: Optional[str] = None
    caller_id: Optional[str] = None
    called_number: Optional[str] = None
    call_sid: Optional[str] = None
    dynamic_variables: Dict[str, Any] = {}


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """Check an HMAC-SHA256 hex digest of the raw request body."""
    if not signature:
        return False
    expected = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def empty_response() -> Dict[str, Any]:
    return {"dynamic_variables": {}, "conversation_config_override": {}}


class ConversationInitiationResolver:
    """Builds per-tenant conversation overrides for the voice agent."""

    def __init__(self, tenant_resolver: TenantPhoneResolver):
        self.tenant_resolver = tenant_resolver

    async def resolve(self, request: ConversationInitiationRequest) -> Dict[str, Any]:
        """
        Build the initiation response.

        Never raises: any failure yields a minimal payload that still carries
        the tenant id and the mandatory audio format override.
        """
        inbound = dict(request.dynamic_variables or {})
        tenant_id = inbound.get("tenant_id")

        try:
            return await self._build(request, inbound, tenant_id)
        except Exception as e:
            logger.error(
                f"[CONVERSATION INIT] Error building overrides for conversation {request.conversation_id}: "
                f"{type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            return self.minimal_response(tenant_id)

    @staticmethod
    def minimal_response(tenant_id: Optional[str] = None) -> Dict[str, Any]:
        return {
            "dynamic_variables": {
                "tenant_id": tenant_id or "",
                "business_name": DEFAULT_BUSINESS_NAME,
            },
            "conversation_config_override": audio_format_override(),
        }

    async def _build(
        self,
        request: ConversationInitiationRequest,
        inbound: Dict[str, Any],
        tenant_id: Optional[str],
    ) -> Dict[str, Any]:
        caller_number = inbound.get("caller_number") or request.caller_id
        call_sid = inbound.get("call_sid") or request.call_sid

        logger.info(
            f"[CONVERSATION INIT] Conversation {request.conversation_id} started, "
            f"agent: {request.agent_id}, tenant: {tenant_id or 'unknown'}"
        )

        tenant = None
        if tenant_id:
            try:
                tenant = await self.tenant_resolver.get_by_id(tenant_id)
            except Exception as e:
                logger.error(
                    f"[CONVERSATION INIT] Error fetching tenant {tenant_id}: {type(e).__name__}: {str(e)}",
                    exc_info=True,
                )
            if tenant is None:
                logger.warning(f"[CONVERSATION INIT] Tenant {tenant_id} not available; using defaults")

        business_name = (
            (tenant.name if tenant else None)
            or inbound.get("business_name")
            or inbound.get("tenant_name")
            or DEFAULT_BUSINESS_NAME
        )

        dynamic_variables = dict(inbound)
        dynamic_variables.update(
            {
                "tenant_id": tenant_id or "",
                "business_name": business_name,
                "caller_number": caller_number or "",
                "call_sid": call_sid or "",
            }
        )
        if request.conversation_id:
            dynamic_variables["conversation_id"] = request.conversation_id

        config_override = audio_format_override()
        if tenant is not None:
            if tenant.business_hours:
                dynamic_variables["business_hours"] = format_business_hours(tenant.business_hours)
            if tenant.greeting:
                config_override["agent"]["first_message"] = tenant.greeting
            if tenant.tone:
                config_override["agent"]["prompt"] = {
                    "prompt": build_persona_prompt(business_name, tenant.tone, tenant.greeting),
                }

        return {
            "dynamic_variables": dynamic_variables,
            "conversation_config_override": config_override,
        }
