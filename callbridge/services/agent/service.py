"""ElevenLabs Conversational AI service."""
import asyncio
import logging
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import websockets
from websockets.exceptions import WebSocketException

from callbridge.services.agent.protocol import AUDIO_FORMAT
from callbridge.services.tenants.models import TenantProfile

logger = logging.getLogger(__name__)

# 16MB is large enough for any audio frame the agent sends
WS_MAX_SIZE = 16 * 1024 * 1024


class AgentUnavailableError(Exception):
    """The voice agent cannot be reached or is not configured."""


def pin_audio_format(url: str) -> str:
    """Add the carrier codec to a signed URL's query string."""
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query["output_format"] = AUDIO_FORMAT
    query["input_format"] = AUDIO_FORMAT
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class VoiceAgentService:
    """Owns the agent credentials and opens agent-side WebSocket connections."""

    def __init__(
        self,
        api_key: Optional[str],
        default_agent_id: Optional[str] = None,
        api_url: str = "https://api.elevenlabs.io/v1",
        connect_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.default_agent_id = default_agent_id
        self.api_url = api_url.rstrip("/")
        self.connect_timeout = connect_timeout
        self.transport = transport

    def is_available(self) -> bool:
        """Configuration check only; no network probe."""
        return bool(self.api_key)

    def resolve_agent_id(self, tenant: Optional[TenantProfile]) -> Optional[str]:
        """Tenant override first, then the process-wide default."""
        if tenant and tenant.agent_id:
            return tenant.agent_id
        return self.default_agent_id

    async def get_signed_url(self, agent_id: str) -> str:
        """
        Request a signed conversation URL for an agent.

        Args:
            agent_id: ElevenLabs agent ID

        Returns:
            WebSocket URL with the carrier audio format pinned

        Raises:
            AgentUnavailableError: If the service is unconfigured or the request fails
        """
        if not self.is_available():
            raise AgentUnavailableError("ElevenLabs is not configured")

        logger.info(f"[AGENT] Requesting signed URL for agent: {agent_id}")
        try:
            async with httpx.AsyncClient(timeout=self.connect_timeout, transport=self.transport) as client:
                response = await client.get(
                    f"{self.api_url}/convai/conversation/get_signed_url",
                    params={"agent_id": agent_id},
                    headers={"xi-api-key": self.api_key},
                )
                response.raise_for_status()
                signed_url = response.json()["signed_url"]
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.error(f"[AGENT] Failed to get signed URL for agent {agent_id}: {type(e).__name__}: {str(e)}")
            raise AgentUnavailableError(f"Could not get signed URL for agent {agent_id}") from e

        return pin_audio_format(signed_url)

    async def connect(self, agent_id: str):
        """
        Open the agent-side WebSocket for one call.

        Returns:
            An open websockets client connection
        """
        signed_url = await self.get_signed_url(agent_id)
        try:
            return await websockets.connect(
                signed_url,
                max_size=WS_MAX_SIZE,
                open_timeout=self.connect_timeout,
                compression=None,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.error(f"[AGENT] Could not connect to agent {agent_id}: {type(e).__name__}: {str(e)}")
            raise AgentUnavailableError(f"Could not connect to agent {agent_id}") from e
