"""Twilio voice webhook endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import Response
from twilio.request_validator import RequestValidator

from callbridge.core.config import settings
from callbridge.core.container import ServiceContainer
from callbridge.core.dependencies import get_services
from callbridge.services.telephony.ingress import IncomingCall
from callbridge.services.telephony.twiml import (
    GENERIC_ERROR_MESSAGE,
    UNAVAILABLE_MESSAGE,
    build_hangup_twiml,
)

router = APIRouter()
logger = logging.getLogger(__name__)


def get_base_url(request: Request) -> str:
    """
    Get the base URL for constructing absolute URLs.

    Uses BASE_URL environment variable if set (e.g., behind a proxy),
    otherwise constructs from request.
    """
    if settings.base_url:
        return settings.base_url.rstrip("/")
    return str(request.base_url).rstrip("/")


def xml_response(twiml: str) -> Response:
    return Response(content=twiml, media_type="application/xml")


async def validate_twilio_request(request: Request) -> None:
    """Reject webhooks without a valid X-Twilio-Signature when validation is enabled."""
    if not settings.twilio_validate_signature:
        return
    if not settings.twilio_auth_token:
        logger.warning("[TWILIO] Signature validation enabled but TWILIO_AUTH_TOKEN is not set")
        return

    url = str(request.url)
    if settings.base_url:
        url = get_base_url(request) + request.url.path
        if request.url.query:
            url += f"?{request.url.query}"

    form = await request.form()
    validator = RequestValidator(settings.twilio_auth_token)
    signature = request.headers.get("X-Twilio-Signature", "")
    if not validator.validate(url, dict(form), signature):
        logger.warning(
            f"[TWILIO] Invalid signature on {request.url.path} - "
            f"Client: {request.client.host if request.client else 'unknown'}"
        )
        raise HTTPException(status_code=403, detail="Invalid Twilio signature")


@router.post("/twilio/voice", dependencies=[Depends(validate_twilio_request)])
async def handle_incoming_call(
    request: Request,
    CallSid: Optional[str] = Form(None),
    CallId: Optional[str] = Form(None),
    From: str = Form(""),
    To: str = Form(""),
    CallStatus: Optional[str] = Form(None),
    services: ServiceContainer = Depends(get_services),
):
    """
    Handle incoming call from Twilio.

    Always answers with TwiML: either a Connect/Stream to the media bridge or
    a spoken message followed by a hangup.
    """
    call_sid = CallSid or CallId or ""
    logger.info(
        f"[INCOMING CALL] Received incoming call webhook - CallSid: {call_sid}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    if services.shutdown.is_draining:
        logger.warning(f"[INCOMING CALL] Server is draining; rejecting call {call_sid}")
        return xml_response(build_hangup_twiml(UNAVAILABLE_MESSAGE))

    try:
        call = IncomingCall(call_sid=call_sid, from_number=From, to_number=To, call_status=CallStatus)
        result = await services.ingress.handle_incoming_call(call, get_base_url(request))
        logger.info(
            f"[INCOMING CALL] Processed incoming call - CallSid: {call_sid}, "
            f"bridged: {result.success}, TwiML length: {len(result.twiml)} bytes"
        )
        return xml_response(result.twiml)
    except Exception as e:
        logger.error(
            f"[INCOMING CALL] Error processing incoming call - CallSid: {call_sid}, "
            f"Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        return xml_response(build_hangup_twiml(GENERIC_ERROR_MESSAGE))


@router.post("/twilio/status", dependencies=[Depends(validate_twilio_request)])
async def handle_call_status(
    request: Request,
    CallSid: str = Form(...),
    CallStatus: str = Form(...),
    services: ServiceContainer = Depends(get_services),
):
    """
    Handle call status updates from Twilio.

    Terminal statuses (completed, failed, etc.) are written to the call log.
    """
    logger.info(
        f"[CALL STATUS] Received status update - CallSid: {CallSid}, "
        f"CallStatus: {CallStatus}, "
        f"Client: {request.client.host if request.client else 'unknown'}"
    )

    try:
        if CallStatus in ["completed", "failed", "busy", "no-answer", "canceled"]:
            await services.call_log.update_status(CallSid, CallStatus)
            logger.info(f"[CALL STATUS] Call log updated - CallSid: {CallSid}, Final status: {CallStatus}")
        else:
            logger.debug(
                f"[CALL STATUS] Status update received but no action needed - "
                f"CallSid: {CallSid}, CallStatus: {CallStatus}"
            )
        return Response(content="OK", media_type="text/plain")

    except Exception as e:
        logger.error(
            f"[CALL STATUS] Error handling call status update - CallSid: {CallSid}, "
            f"CallStatus: {CallStatus}, Error: {type(e).__name__}: {str(e)}",
            exc_info=True,
        )
        # Still return OK to Twilio to avoid retries
        return Response(content="OK", media_type="text/plain")
