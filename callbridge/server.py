"""Server entry point with graceful call draining."""
import asyncio
import logging
import signal
from typing import Optional

import uvicorn

from callbridge.core.config import settings
from callbridge.core.container import ServiceContainer
from callbridge.core.logging import setup_logging
from callbridge.db.database import AsyncSessionLocal
from callbridge.main import app
from callbridge.services.call_session.shutdown import GracefulShutdownCoordinator

logger = logging.getLogger(__name__)


class DrainingServer(uvicorn.Server):
    """uvicorn server that drains live calls on SIGINT/SIGTERM before exiting."""

    def __init__(self, config: uvicorn.Config, coordinator: GracefulShutdownCoordinator):
        super().__init__(config)
        self.coordinator = coordinator
        self.coordinator.on_shutdown = self.request_exit
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def serve(self, sockets=None) -> None:
        self._loop = asyncio.get_running_loop()
        await super().serve(sockets=sockets)

    def request_exit(self) -> None:
        self.should_exit = True

    def handle_exit(self, sig: int, frame) -> None:
        self.coordinator.begin(signal.Signals(sig).name, loop=self._loop)


def main() -> None:
    setup_logging()
    services = ServiceContainer(settings, AsyncSessionLocal)
    app.state.services = services

    config = uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
    server = DrainingServer(config, services.shutdown)
    logger.info(f"[SERVER] Starting on {settings.host}:{settings.port}")
    server.run()


if __name__ == "__main__":
    main()
