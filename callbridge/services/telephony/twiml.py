"""TwiML builders for the carrier voice webhook."""
from typing import Dict, Optional
from urllib.parse import urlencode

from twilio.twiml.voice_response import VoiceResponse

MEDIA_STREAM_PATH = "/media-stream"
STREAM_NAME = "VoiceAgentStream"

NOT_IN_SERVICE_MESSAGE = "This number is not in service. Please check the number and try again."
NOT_CONFIGURED_MESSAGE = "Our AI assistant is not properly configured. Please contact support."
UNAVAILABLE_MESSAGE = "Our AI assistant is temporarily unavailable. Please try again later."
GENERIC_ERROR_MESSAGE = "We encountered an error. Please try again later."


def build_media_stream_url(base_url: str, agent_id: str, tenant_id: str, call_id: str) -> str:
    """
    Build the bridge WebSocket URL for a call.

    The scheme follows the base URL: https becomes wss, anything else ws.
    """
    ws_scheme = "wss" if base_url.startswith("https") else "ws"
    host = base_url.split("://", 1)[-1].rstrip("/")
    query = urlencode({"agent_id": agent_id, "tenant_id": tenant_id, "call_id": call_id})
    return f"{ws_scheme}://{host}{MEDIA_STREAM_PATH}?{query}"


def build_hangup_twiml(message: str) -> str:
    """Speak a message, then hang up."""
    response = VoiceResponse()
    response.say(message, voice="Polly.Joanna", language="en-US")
    response.hangup()
    return str(response)


def build_connect_twiml(media_stream_url: str, parameters: Dict[str, Optional[str]]) -> str:
    """
    Connect the call to the media stream bridge.

    Args:
        media_stream_url: WebSocket URL of the bridge
        parameters: Named values forwarded back to the bridge in the "start" frame;
            None values are skipped

    Returns:
        TwiML XML string
    """
    response = VoiceResponse()
    connect = response.connect()
    stream = connect.stream(url=media_stream_url, name=STREAM_NAME)
    for name, value in parameters.items():
        if value is not None:
            stream.parameter(name=name, value=str(value))
    return str(response)
