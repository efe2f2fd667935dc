"""Unit tests for incoming call handling and TwiML."""
from urllib.parse import parse_qs, urlsplit

from callbridge.services.agent.service import VoiceAgentService
from callbridge.services.call_session.registry import SessionRegistry
from callbridge.services.persistence.calls import CallLogService
from callbridge.services.telephony.ingress import CallIngressHandler, IncomingCall
from callbridge.services.telephony.twiml import (
    GENERIC_ERROR_MESSAGE,
    NOT_CONFIGURED_MESSAGE,
    NOT_IN_SERVICE_MESSAGE,
    UNAVAILABLE_MESSAGE,
    build_connect_twiml,
    build_hangup_twiml,
    build_media_stream_url,
)
from callbridge.services.tenants.resolver import TenantPhoneResolver

BASE_URL = "https://bridge.example.com"


def make_handler(session_factory, api_key="test-key", default_agent_id="agent-default", call_log=None):
    agent_service = VoiceAgentService(api_key=api_key, default_agent_id=default_agent_id)
    return CallIngressHandler(TenantPhoneResolver(session_factory), agent_service, call_log)


def incoming(to_number, call_sid="CA100"):
    return IncomingCall(call_sid=call_sid, from_number="+15550001111", to_number=to_number, call_status="ringing")


class TestTwiml:
    """Test TwiML builders."""

    def test_media_stream_url(self):
        url = build_media_stream_url(BASE_URL + "/", "agent-1", "tenant-1", "CA1")

        parts = urlsplit(url)
        assert parts.scheme == "wss"
        assert parts.netloc == "bridge.example.com"
        assert parts.path == "/media-stream"
        assert parse_qs(parts.query) == {"agent_id": ["agent-1"], "tenant_id": ["tenant-1"], "call_id": ["CA1"]}

    def test_media_stream_url_plain_http(self):
        assert build_media_stream_url("http://localhost:8000", "a", "t", "c").startswith("ws://localhost:8000/")

    def test_hangup_twiml(self):
        twiml = build_hangup_twiml(NOT_IN_SERVICE_MESSAGE)

        assert 'voice="Polly.Joanna"' in twiml
        assert 'language="en-US"' in twiml
        assert NOT_IN_SERVICE_MESSAGE in twiml
        assert twiml.endswith("<Hangup /></Response>")

    def test_connect_twiml_skips_missing_parameters(self):
        twiml = build_connect_twiml("wss://bridge.example.com/media-stream", {"tenant_id": "t1", "business_hours": None})

        assert "<Connect>" in twiml
        assert 'name="VoiceAgentStream"' in twiml
        assert '<Parameter name="tenant_id" value="t1" />' in twiml
        assert "business_hours" not in twiml


class TestCallIngressHandler:
    """Test routing incoming calls."""

    async def test_unregistered_number_not_in_service(self, session_factory):
        """Test an unknown number gets the not-in-service message and no session."""
        registry = SessionRegistry()
        handler = make_handler(session_factory)

        result = await handler.handle_incoming_call(incoming("+15559990000"), BASE_URL)

        assert result.success is False
        assert "not in service" in result.twiml
        assert "<Hangup />" in result.twiml
        assert "<Connect>" not in result.twiml
        assert registry.count() == 0

    async def test_bound_number_connects_stream(self, session_factory):
        """Test a tenant's number connects to the bridge with routing in the URL."""
        handler = make_handler(session_factory)

        result = await handler.handle_incoming_call(incoming("+1 555 123 4567"), BASE_URL)

        assert result.success is True
        assert result.tenant_id == "tenant-bella"
        assert result.agent_id == "agent-bella"
        query = parse_qs(urlsplit(result.media_stream_url).query)
        assert query["tenant_id"] == ["tenant-bella"]
        assert query["agent_id"] == ["agent-bella"]
        assert query["call_id"] == ["CA100"]
        assert "tenant_id=tenant-bella" in result.twiml
        assert '<Parameter name="tenant_name" value="Bella Salon" />' in result.twiml
        assert '<Parameter name="caller_number" value="+15550001111" />' in result.twiml
        assert '<Parameter name="call_status" value="ringing" />' in result.twiml
        assert '<Parameter name="business_hours"' in result.twiml

    async def test_default_agent_used(self, session_factory):
        """Test tenants without an override use the process-wide agent."""
        handler = make_handler(session_factory)

        result = await handler.handle_incoming_call(incoming("+15552223333"), BASE_URL)

        assert result.success is True
        assert result.agent_id == "agent-default"
        assert '<Parameter name="business_hours"' not in result.twiml

    async def test_no_agent_configured(self, session_factory):
        handler = make_handler(session_factory, default_agent_id=None)

        result = await handler.handle_incoming_call(incoming("+15552223333"), BASE_URL)

        assert result.success is False
        assert NOT_CONFIGURED_MESSAGE in result.twiml

    async def test_agent_unavailable(self, session_factory):
        handler = make_handler(session_factory, api_key=None)

        result = await handler.handle_incoming_call(incoming("+15551234567"), BASE_URL)

        assert result.success is False
        assert UNAVAILABLE_MESSAGE in result.twiml

    async def test_unexpected_error_generic_message(self, session_factory, monkeypatch):
        """Test unexpected failures still return well-formed TwiML."""
        handler = make_handler(session_factory)

        def explode(*args, **kwargs):
            raise ValueError("bad url")

        monkeypatch.setattr("callbridge.services.telephony.ingress.build_media_stream_url", explode)

        result = await handler.handle_incoming_call(incoming("+15551234567"), BASE_URL)

        assert result.success is False
        assert GENERIC_ERROR_MESSAGE in result.twiml
        assert result.twiml.startswith("<?xml")

    async def test_bridged_call_logged(self, session_factory):
        call_log = CallLogService(session_factory)
        handler = make_handler(session_factory, call_log=call_log)

        await handler.handle_incoming_call(incoming("+15551234567", call_sid="CA200"), BASE_URL)

        call = await call_log.get_call_by_sid("CA200")
        assert call is not None
        assert call.tenant_id == "tenant-bella"
        assert call.agent_id == "agent-bella"
        assert call.status == "in_progress"
