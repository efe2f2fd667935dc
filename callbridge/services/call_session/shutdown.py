"""Graceful shutdown coordination for live calls."""
import asyncio
import logging
import os
import threading
from typing import Callable, List, Optional

from callbridge.services.call_session.registry import SessionRegistry
from callbridge.services.monitoring.live_calls import LiveCallMonitor

logger = logging.getLogger(__name__)


def _hard_exit() -> None:
    logger.error("[SHUTDOWN] Process did not exit in time; forcing exit")
    os._exit(1)


class GracefulShutdownCoordinator:
    """
    Drains active calls before the process stops.

    On the first termination signal the coordinator flips into draining mode,
    which makes the HTTP and WebSocket entry points refuse new calls. It then
    waits for the session registry to empty, polling every ``poll_interval``
    seconds, and force-closes whatever is left once ``timeout`` elapses.
    Repeated signals are ignored.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        timeout: float = 300.0,
        poll_interval: float = 5.0,
        hard_exit_seconds: float = 10.0,
        on_shutdown: Optional[Callable[[], None]] = None,
        monitor: Optional[LiveCallMonitor] = None,
        hard_exit: Callable[[], None] = _hard_exit,
    ):
        self.registry = registry
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.hard_exit_seconds = hard_exit_seconds
        self.on_shutdown = on_shutdown
        self.monitor = monitor
        self.hard_exit = hard_exit
        self.forced_streams: List[str] = []
        self._draining = False
        self._drain_task: Optional[asyncio.Task] = None
        self._exit_timer: Optional[threading.Timer] = None

    @property
    def is_draining(self) -> bool:
        return self._draining

    def begin(self, signal_name: str = "SIGTERM", loop: Optional[asyncio.AbstractEventLoop] = None) -> bool:
        """
        Enter draining mode and schedule the drain.

        Safe to call from a signal handler. Returns False if a shutdown is
        already in progress.
        """
        if self._draining:
            logger.info(f"[SHUTDOWN] {signal_name} received again; shutdown already in progress")
            return False
        self._draining = True
        logger.info(f"[SHUTDOWN] {signal_name} received; draining {self.registry.count()} active call(s)")

        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
        if loop is None:
            logger.warning("[SHUTDOWN] No running event loop; shutting down immediately")
            self._finish()
            return True

        loop.call_soon_threadsafe(self._start_drain)
        return True

    def _start_drain(self) -> None:
        self._drain_task = asyncio.ensure_future(self.drain())

    async def wait(self) -> None:
        """Wait for a drain started by ``begin`` to finish."""
        while self._drain_task is None:
            await asyncio.sleep(0)
        await self._drain_task

    async def drain(self) -> None:
        """Wait for active calls to finish, then force-close stragglers and stop."""
        self._draining = True
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while self.registry.count() > 0:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            logger.info(
                f"[SHUTDOWN] Waiting for {self.registry.count()} active call(s); "
                f"{int(remaining)}s left before timeout"
            )
            await asyncio.sleep(min(self.poll_interval, remaining))

        if self.registry.count() > 0:
            logger.warning(
                f"[SHUTDOWN] Drain timeout reached; force-terminating {self.registry.count()} call(s)"
            )
            self.forced_streams = await self.registry.force_terminate_all()
        else:
            logger.info("[SHUTDOWN] All calls finished")

        if self.monitor:
            await self.monitor.close_all()
        self._finish()

    def _finish(self) -> None:
        if self._exit_timer is None and self.hard_exit_seconds > 0:
            self._exit_timer = threading.Timer(self.hard_exit_seconds, self.hard_exit)
            self._exit_timer.daemon = True
            self._exit_timer.start()
        logger.info("[SHUTDOWN] Stopping server")
        if self.on_shutdown:
            self.on_shutdown()

