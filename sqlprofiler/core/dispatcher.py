"""Backend-side command loop."""

import asyncio
import logging
from typing import Any, Optional

from sqlprofiler.core.backend import CaptureBackend
from sqlprofiler.core.bus import (
    Command,
    CommandChannel,
    Connect,
    Disconnect,
    LoadConnection,
    StartCapture,
    StopCapture,
)
from sqlprofiler.core.connection_store import ConnectionStore
from sqlprofiler.core.errors import CommandError

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Executes commands from a channel against a capture backend.

    Commands run one at a time in arrival order. Every reply is either the
    command's result or a :class:`CommandError`.
    """

    def __init__(
        self,
        channel: CommandChannel,
        backend: CaptureBackend,
        connection_store: Optional[ConnectionStore] = None,
    ):
        self.channel = channel
        self.backend = backend
        self.connection_store = connection_store
        self._task: Optional[asyncio.Task] = None

    def start(self) -> asyncio.Task:
        """Start serving in a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.serve())
        return self._task

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def serve(self) -> None:
        while True:
            command = await self.channel.receive()
            await self.dispatch(command)

    async def dispatch(self, command: Command) -> None:
        """Run a single command and resolve its reply."""
        name = type(command).__name__
        logger.debug(f"Dispatching {name}")

        try:
            result = await self._execute(command)
        except CommandError as e:
            logger.warning(f"{name} failed: {e}")
            self._resolve(command, error=e)
        except Exception as e:
            logger.error(f"{name} raised unexpectedly: {e}", exc_info=True)
            self._resolve(command, error=CommandError(f"Internal error: {e}"))
        else:
            self._resolve(command, result=result)

    async def _execute(self, command: Command) -> Any:
        if isinstance(command, Connect):
            await self.backend.connect(command.config)
            if self.connection_store:
                try:
                    self.connection_store.save(command.config, command.remember_password)
                except OSError as e:
                    raise CommandError(f"Failed to write settings: {e}") from e
            return None

        if isinstance(command, Disconnect):
            return await self.backend.disconnect()

        if isinstance(command, StartCapture):
            return await self.backend.start_capture()

        if isinstance(command, StopCapture):
            return await self.backend.stop_capture()

        if isinstance(command, LoadConnection):
            if not self.connection_store:
                raise CommandError("No saved connection")
            saved = self.connection_store.load()
            if saved is None:
                raise CommandError("No saved connection")
            return saved

        raise CommandError(f"Unknown command: {type(command).__name__}")

    def _resolve(self, command: Command, result: Any = None, error: Exception = None) -> None:
        reply = command.reply
        if reply is None or reply.done():
            return
        if error is not None:
            reply.set_exception(error)
        else:
            reply.set_result(result)
