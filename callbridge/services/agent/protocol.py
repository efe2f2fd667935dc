"""Frame builders for the carrier media stream and the voice agent socket."""
import json
from typing import Any, Dict

# Twilio media streams are fixed to 8kHz mu-law; the agent defaults to pcm_16000
AUDIO_FORMAT = "ulaw_8000"
AGENT_LANGUAGE = "en"

INITIATION_TYPE = "conversation_initiation_client_data"


def audio_format_override() -> Dict[str, Any]:
    """Mandatory conversation_config_override pinning both legs to the carrier codec."""
    return {
        "agent": {
            "language": AGENT_LANGUAGE,
            "agent_output_audio_format": AUDIO_FORMAT,
            "user_input_audio_format": AUDIO_FORMAT,
        },
        "tts": {
            "output_format": AUDIO_FORMAT,
        },
    }


def initiation_frame(dynamic_variables: Dict[str, Any]) -> str:
    return json.dumps(
        {
            "type": INITIATION_TYPE,
            "conversation_config_override": audio_format_override(),
            "dynamic_variables": dynamic_variables,
        }
    )


def audio_chunk_frame(payload: str) -> str:
    return json.dumps({"user_audio_chunk": payload})


def pong_frame(event_id: Any) -> str:
    return json.dumps({"type": "pong", "event_id": event_id})


def carrier_media_frame(stream_sid: str, payload: str) -> str:
    return json.dumps({"event": "media", "streamSid": stream_sid, "media": {"payload": payload}})


def carrier_clear_frame(stream_sid: str) -> str:
    return json.dumps({"event": "clear", "streamSid": stream_sid})
