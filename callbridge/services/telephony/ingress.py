"""Incoming call handling for the voice agent bridge."""
import logging
from typing import Optional

from pydantic import BaseModel

from callbridge.services.agent.service import VoiceAgentService
from callbridge.services.persistence.calls import CallLogService
from callbridge.services.telephony.twiml import (
    GENERIC_ERROR_MESSAGE,
    NOT_CONFIGURED_MESSAGE,
    NOT_IN_SERVICE_MESSAGE,
    UNAVAILABLE_MESSAGE,
    build_connect_twiml,
    build_hangup_twiml,
    build_media_stream_url,
)
from callbridge.services.tenants.business_hours import format_business_hours
from callbridge.services.tenants.resolver import TenantPhoneResolver

logger = logging.getLogger(__name__)

DEFAULT_BUSINESS_NAME = "Our Business"


class IncomingCall(BaseModel):
    """Carrier webhook fields for a new call."""

    call_sid: str
    from_number: str = ""
    to_number: str = ""
    call_status: Optional[str] = None


class IngressResult(BaseModel):
    """Outcome of an incoming call webhook."""

    success: bool
    twiml: str
    tenant_id: Optional[str] = None
    agent_id: Optional[str] = None
    media_stream_url: Optional[str] = None


class CallIngressHandler:
    """Decides whether to bridge a call and builds the call-control response."""

    def __init__(
        self,
        tenant_resolver: TenantPhoneResolver,
        agent_service: VoiceAgentService,
        call_log: Optional[CallLogService] = None,
    ):
        self.tenant_resolver = tenant_resolver
        self.agent_service = agent_service
        self.call_log = call_log

    def _fail(self, message: str) -> IngressResult:
        return IngressResult(success=False, twiml=build_hangup_twiml(message))

    async def handle_incoming_call(self, call: IncomingCall, base_url: str) -> IngressResult:
        """
        Route an incoming call to the tenant's voice agent.

        Every outcome, including unexpected errors, produces well-formed TwiML:
        either a spoken message followed by a hangup, or a Connect/Stream to
        the media bridge.
        """
        logger.info(
            f"[INCOMING CALL] Incoming call {call.call_sid} from {call.from_number} to {call.to_number}"
        )
        try:
            tenant = await self.tenant_resolver.find_by_phone_number(call.to_number)
            if not tenant:
                logger.warning(f"[INCOMING CALL] No tenant found for phone number: {call.to_number}")
                return self._fail(NOT_IN_SERVICE_MESSAGE)

            agent_id = self.agent_service.resolve_agent_id(tenant)
            if not agent_id:
                logger.error(f"[INCOMING CALL] No agent ID configured for tenant: {tenant.tenant_id}")
                return self._fail(NOT_CONFIGURED_MESSAGE)

            if not self.agent_service.is_available():
                logger.warning(f"[INCOMING CALL] Voice agent not configured for tenant: {tenant.tenant_id}")
                return self._fail(UNAVAILABLE_MESSAGE)

            media_stream_url = build_media_stream_url(base_url, agent_id, tenant.tenant_id, call.call_sid)
            business_name = tenant.name or DEFAULT_BUSINESS_NAME
            parameters = {
                "agent_id": agent_id,
                "tenant_id": tenant.tenant_id,
                "call_sid": call.call_sid,
                "tenant_name": business_name,
                "business_name": business_name,
                "caller_number": call.from_number,
                "call_status": call.call_status,
                "business_hours": format_business_hours(tenant.business_hours) if tenant.business_hours else None,
            }
            twiml = build_connect_twiml(media_stream_url, parameters)

            if self.call_log:
                await self.call_log.record_incoming(
                    call_sid=call.call_sid,
                    tenant_id=tenant.tenant_id,
                    agent_id=agent_id,
                    from_number=call.from_number,
                    to_number=call.to_number,
                )

            logger.info(
                f"[INCOMING CALL] Connected call {call.call_sid} to agent {agent_id} "
                f"for tenant {tenant.tenant_id}"
            )
            return IngressResult(
                success=True,
                twiml=twiml,
                tenant_id=tenant.tenant_id,
                agent_id=agent_id,
                media_stream_url=media_stream_url,
            )

        except Exception as e:
            logger.error(
                f"[INCOMING CALL] Error handling call {call.call_sid}: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            return self._fail(GENERIC_ERROR_MESSAGE)
