"""Unit tests for HTTP and WebSocket endpoints."""
import asyncio
import hashlib
import hmac
import json

import pytest
from starlette.websockets import WebSocketDisconnect

from callbridge.services.persistence.calls import CallLogService


def voice_form(to_number, call_sid="CA100"):
    return {"CallSid": call_sid, "From": "+15550001111", "To": to_number, "CallStatus": "ringing"}


class TestVoiceWebhook:
    """Test Twilio voice webhook endpoints."""

    def test_unregistered_number(self, test_client):
        response = test_client.post("/webhooks/twilio/voice", data=voice_form("+15559990000"))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "This number is not in service" in response.text

    def test_registered_number_connects(self, test_client):
        response = test_client.post("/webhooks/twilio/voice", data=voice_form("+15551234567"))

        assert response.status_code == 200
        assert "<Connect>" in response.text
        assert "ws://testserver/media-stream?" in response.text
        assert "tenant_id=tenant-bella" in response.text
        assert "agent_id=agent-bella" in response.text

    def test_draining_rejects_calls(self, test_client, test_services):
        test_services.shutdown.begin("SIGTERM")

        response = test_client.post("/webhooks/twilio/voice", data=voice_form("+15551234567"))

        assert "temporarily unavailable" in response.text
        assert "<Connect>" not in response.text

    def test_invalid_twilio_signature(self, test_client, test_settings, monkeypatch):
        test_settings.twilio_validate_signature = True
        test_settings.twilio_auth_token = "token"
        monkeypatch.setattr("callbridge.api.webhooks.voice.settings", test_settings)

        response = test_client.post(
            "/webhooks/twilio/voice",
            data=voice_form("+15551234567"),
            headers={"X-Twilio-Signature": "invalid"},
        )

        assert response.status_code == 403

    def test_status_callback_updates_call_log(self, test_client, test_services, api_session_factory):
        test_client.post("/webhooks/twilio/voice", data=voice_form("+15551234567", call_sid="CA300"))

        response = test_client.post("/webhooks/twilio/status", data={"CallSid": "CA300", "CallStatus": "completed"})

        assert response.status_code == 200
        assert response.text == "OK"
        call = asyncio.run(CallLogService(api_session_factory).get_call_by_sid("CA300"))
        assert call.status == "completed"

    def test_status_callback_unknown_call(self, test_client):
        response = test_client.post("/webhooks/twilio/status", data={"CallSid": "CA999", "CallStatus": "ringing"})

        assert response.status_code == 200
        assert response.text == "OK"


class TestAgentWebhooks:
    """Test ElevenLabs webhook endpoints."""

    def test_conversation_initiation(self, test_client):
        response = test_client.post(
            "/webhooks/elevenlabs/conversation-initiation",
            json={
                "type": "conversation_initiation_client_data",
                "conversation_id": "conv_1",
                "agent_id": "agent-bella",
                "dynamic_variables": {"tenant_id": "tenant-bella", "call_sid": "CA1"},
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert set(data) == {"dynamic_variables", "conversation_config_override"}
        assert data["dynamic_variables"]["business_name"] == "Bella Salon"
        assert data["conversation_config_override"]["tts"]["output_format"] == "ulaw_8000"

    def test_codec_pinned_for_tenant_request(self, test_client):
        response = test_client.post(
            "/webhooks/elevenlabs/conversation-initiation",
            json={"type": "conversation_initiation_client_data", "dynamic_variables": {"tenant_id": "tenant-bella"}},
        )

        agent = response.json()["conversation_config_override"]["agent"]
        assert agent["agent_output_audio_format"] == "ulaw_8000"
        assert agent["user_input_audio_format"] == "ulaw_8000"

    @pytest.mark.parametrize("webhook_type", ["post_call", "conversation_initiation_client_data_request"])
    def test_unexpected_type(self, test_client, webhook_type):
        response = test_client.post(
            "/webhooks/elevenlabs/conversation-initiation",
            json={"type": webhook_type, "dynamic_variables": {"tenant_id": "tenant-bella"}},
        )

        assert response.json() == {"dynamic_variables": {}, "conversation_config_override": {}}

    def test_unparseable_body(self, test_client):
        response = test_client.post(
            "/webhooks/elevenlabs/conversation-initiation",
            content=b"not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["conversation_config_override"]["agent"]["user_input_audio_format"] == "ulaw_8000"

    @pytest.fixture
    def production_settings(self, test_settings, monkeypatch):
        test_settings.environment = "production"
        test_settings.elevenlabs_webhook_secret = "secret"
        monkeypatch.setattr("callbridge.api.webhooks.agent.settings", test_settings)
        return test_settings

    def test_signature_required_in_production(self, test_client, production_settings):
        response = test_client.post(
            "/webhooks/elevenlabs/conversation-initiation",
            content=b"{}",
            headers={"content-type": "application/json", "X-ElevenLabs-Signature": "bad"},
        )

        assert response.status_code == 401

    def test_valid_signature_in_production(self, test_client, production_settings):
        body = json.dumps({"dynamic_variables": {"tenant_id": "tenant-bella"}}).encode()
        signature = hmac.new(b"secret", body, hashlib.sha256).hexdigest()

        response = test_client.post(
            "/webhooks/elevenlabs/conversation-initiation",
            content=body,
            headers={"content-type": "application/json", "X-ElevenLabs-Signature": signature},
        )

        assert response.status_code == 200
        assert response.json()["dynamic_variables"]["tenant_id"] == "tenant-bella"

    def test_tool_call(self, test_client):
        response = test_client.post(
            "/webhooks/elevenlabs/tool-call",
            json={"tool_name": "get_business_hours", "tenant_id": "tenant-bella"},
        )

        assert response.status_code == 200
        assert response.json()["success"] is True

    def test_unknown_tool_call(self, test_client):
        response = test_client.post("/webhooks/elevenlabs/tool-call", json={"tool_name": "cancel_appointment"})

        assert response.json() == {"success": False, "error": "Unknown tool: cancel_appointment"}


class TestHealthAndSockets:
    """Test health reporting and WebSocket admission."""

    def test_health(self, test_client):
        response = test_client.get("/health")

        assert response.json() == {"status": "healthy", "active_sessions": 0, "agent_configured": True}

    def test_health_while_draining(self, test_client, test_services):
        test_services.shutdown.begin("SIGTERM")

        assert test_client.get("/health").json()["status"] == "draining"

    def test_media_stream_rejected_while_draining(self, test_client, test_services):
        test_services.shutdown.begin("SIGTERM")

        with test_client.websocket_connect("/media-stream?agent_id=a&tenant_id=t&call_id=c") as websocket:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_text()

        assert exc_info.value.code == 1013

    def test_live_calls_sends_call_list(self, test_client):
        with test_client.websocket_connect("/ws/live-calls?tenant_id=tenant-bella") as websocket:
            update = websocket.receive_json()

        assert update["type"] == "call_list"
        assert update["data"] == {"active_calls": []}

    def test_live_calls_rejected_while_draining(self, test_client, test_services):
        test_services.shutdown.begin("SIGTERM")

        with test_client.websocket_connect("/ws/live-calls") as websocket:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                websocket.receive_text()

        assert exc_info.value.code == 1013
