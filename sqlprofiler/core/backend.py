"""Interface of a capture backend."""

import logging

from sqlprofiler.core.bus import PROFILER_STATUS, QUERY_EVENT, PushRouter
from sqlprofiler.core.models import ConnectionConfig, ProfilerStatus, QueryEvent

logger = logging.getLogger(__name__)


class CaptureBackend:
    """Source of query telemetry.

    Subclasses implement the four commands and report state changes through
    :meth:`push_status` and captured events through :meth:`push_event`.
    Commands signal failure by raising
    :class:`~sqlprofiler.core.errors.CommandError`.
    """

    def __init__(self, router: PushRouter):
        self.router = router
        self.connected = False
        self.capturing = False

    async def connect(self, config: ConnectionConfig) -> None:
        raise NotImplementedError

    async def disconnect(self) -> None:
        raise NotImplementedError

    async def start_capture(self) -> None:
        raise NotImplementedError

    async def stop_capture(self) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        """Release resources on shutdown."""
        if self.connected:
            await self.disconnect()

    def push_status(self, error: str = None) -> None:
        status = ProfilerStatus(
            connected=self.connected,
            capturing=self.capturing,
            error=error,
        )
        logger.debug(f"Pushing status {status}")
        self.router.publish(PROFILER_STATUS, status)

    def push_event(self, event: QueryEvent) -> None:
        self.router.publish(QUERY_EVENT, event)
