"""Service wiring."""
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from callbridge.core.config import Settings
from callbridge.services.agent.service import VoiceAgentService
from callbridge.services.call_session.bridge import MediaStreamBridge
from callbridge.services.call_session.registry import SessionRegistry
from callbridge.services.call_session.shutdown import GracefulShutdownCoordinator
from callbridge.services.conversation.initiation import ConversationInitiationResolver
from callbridge.services.conversation.tools import TenantToolService
from callbridge.services.monitoring.live_calls import LiveCallMonitor
from callbridge.services.persistence.calls import CallLogService
from callbridge.services.telephony.ingress import CallIngressHandler
from callbridge.services.tenants.resolver import TenantPhoneResolver


class ServiceContainer:
    """
    Long-lived services for one application instance.

    Every collaborator is constructed here and passed in explicitly; the
    container is stored on ``app.state.services`` and reached from routes
    through ``get_services``.
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        agent_service: Optional[VoiceAgentService] = None,
        on_shutdown: Optional[Callable[[], None]] = None,
    ):
        self.settings = settings
        self.registry = SessionRegistry()
        self.monitor = LiveCallMonitor(self.registry)
        self.call_log = CallLogService(session_factory)
        self.tenant_resolver = TenantPhoneResolver(session_factory)
        self.agent_service = agent_service or VoiceAgentService(
            api_key=settings.elevenlabs_api_key,
            default_agent_id=settings.elevenlabs_agent_id,
            api_url=settings.elevenlabs_api_url,
            connect_timeout=settings.agent_connect_timeout_seconds,
        )
        self.ingress = CallIngressHandler(self.tenant_resolver, self.agent_service, self.call_log)
        self.initiation = ConversationInitiationResolver(self.tenant_resolver)
        self.tools = TenantToolService(self.tenant_resolver)
        self.bridge = MediaStreamBridge(self.registry, self.agent_service, self.call_log, self.monitor)
        self.shutdown = GracefulShutdownCoordinator(
            self.registry,
            timeout=settings.shutdown_timeout_seconds,
            poll_interval=settings.shutdown_poll_interval_seconds,
            hard_exit_seconds=settings.shutdown_hard_exit_seconds,
            on_shutdown=on_shutdown,
            monitor=self.monitor,
        )
