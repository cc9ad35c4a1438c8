"""Connection and capture state of the profiler session."""

import asyncio
import logging
from dataclasses import replace
from enum import Enum
from typing import Callable, List, Optional

from sqlprofiler.core.bus import (
    CommandChannel,
    Connect,
    Disconnect,
    LoadConnection,
    StartCapture,
    StopCapture,
)
from sqlprofiler.core.connection_store import SavedConnection
from sqlprofiler.core.errors import CommandError
from sqlprofiler.core.models import ConnectionConfig, ProfilerStatus

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle states of a session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED_IDLE = "connected-idle"
    CONNECTED_CAPTURING = "connected-capturing"


class ProfilerSession:
    """Owns the :class:`ProfilerStatus` and issues commands to the backend.

    Command failures are recorded on the status, never raised. Status
    snapshots pushed by the backend replace the local flags; a snapshot that
    claims capture without a connection is repaired by sending a stop-capture
    command.
    """

    def __init__(self, channel: CommandChannel):
        self.channel = channel
        self._status = ProfilerStatus()
        self._connecting = False
        self._show_connection = True
        self._repair_task: Optional[asyncio.Task] = None
        self.callbacks: List[Callable[["ProfilerSession"], None]] = []

    @property
    def status(self) -> ProfilerStatus:
        return replace(self._status)

    @property
    def state(self) -> SessionState:
        if self._status.connected:
            if self._status.capturing:
                return SessionState.CONNECTED_CAPTURING
            return SessionState.CONNECTED_IDLE
        if self._connecting:
            return SessionState.CONNECTING
        return SessionState.DISCONNECTED

    @property
    def show_connection(self) -> bool:
        """Whether the connection setup surface should be visible."""
        return self._show_connection

    @property
    def connection_error(self) -> Optional[str]:
        """Error for the connection setup surface; only while disconnected."""
        if self._status.connected:
            return None
        return self._status.error

    @property
    def capture_error(self) -> Optional[str]:
        """Error for the capture controls; only while connected."""
        if not self._status.connected:
            return None
        return self._status.error

    @property
    def repair_task(self) -> Optional[asyncio.Task]:
        return self._repair_task

    def add_callback(self, callback: Callable[["ProfilerSession"], None]) -> None:
        """Add a callback for status changes."""
        self.callbacks.append(callback)

    def _notify_callbacks(self) -> None:
        for callback in self.callbacks:
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Callback error: {e}")

    def _set_error(self, error: Optional[str]) -> None:
        self._status = replace(self._status, error=error)
        self._notify_callbacks()

    async def connect(self, config: ConnectionConfig, remember_password: bool = True) -> bool:
        """Ask the backend to connect.

        The session only becomes connected when the backend pushes a status
        with ``connected=True``.

        Returns:
            True if the request was accepted.
        """
        self._connecting = True
        self._set_error(None)
        logger.info(f"Connecting to {config.server_name}")

        try:
            await self.channel.request(
                Connect(config=config, remember_password=remember_password)
            )
            return True
        except CommandError as e:
            logger.error(f"Failed to connect to {config.server_name}: {e}")
            self._status = replace(self._status, error=str(e))
            return False
        finally:
            self._connecting = False
            self._notify_callbacks()

    async def disconnect(self) -> None:
        """Reset local state to disconnected, then ask the backend to disconnect.

        A failed request only records its error.
        """
        self._status = ProfilerStatus(connected=False, capturing=False)
        self._show_connection = True
        self._notify_callbacks()
        logger.info("Disconnected")

        try:
            await self.channel.request(Disconnect())
        except CommandError as e:
            logger.error(f"Disconnect failed: {e}")
            self._set_error(str(e))

    async def start_capture(self) -> bool:
        """Start capturing. A failure reopens the connection surface."""
        try:
            await self.channel.request(StartCapture())
            return True
        except CommandError as e:
            logger.error(f"Start capture failed: {e}")
            self._status = replace(self._status, error=str(e))
            self._show_connection = True
            self._notify_callbacks()
            return False

    async def stop_capture(self) -> bool:
        try:
            await self.channel.request(StopCapture())
            return True
        except CommandError as e:
            logger.error(f"Stop capture failed: {e}")
            self._set_error(str(e))
            return False

    async def toggle_capture(self) -> bool:
        if self._status.capturing:
            return await self.stop_capture()
        return await self.start_capture()

    async def load_connection(self) -> Optional[SavedConnection]:
        """Fetch saved connection parameters; None when unavailable."""
        try:
            return await self.channel.request(LoadConnection())
        except CommandError as e:
            logger.info(f"No saved connection loaded: {e}")
            return None

    def apply_status(self, snapshot: ProfilerStatus) -> None:
        """Reconcile a status snapshot pushed by the backend."""
        self._status = replace(snapshot)
        if snapshot.connected:
            self._show_connection = False

        if snapshot.inconsistent:
            self._repair()

        self._notify_callbacks()

    def _repair(self) -> None:
        if self._repair_task and not self._repair_task.done():
            logger.debug("Capture repair already in flight")
            return

        logger.warning("Backend reports capturing while disconnected; stopping capture")
        self._repair_task = asyncio.ensure_future(self.stop_capture())

    def toggle_connection_surface(self) -> bool:
        """Show or hide the connection surface. It stays open while disconnected."""
        if not self._status.connected:
            self._show_connection = True
        else:
            self._show_connection = not self._show_connection
        self._notify_callbacks()
        return self._show_connection
