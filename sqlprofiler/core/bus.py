"""Message passing between the UI-side core and the capture backend.

Commands travel over a :class:`CommandChannel` and are answered through a
future attached to each command. Backend pushes (query events and status
snapshots) are delivered by a :class:`PushRouter` to subscribed handlers in
arrival order.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlprofiler.core.models import ConnectionConfig

logger = logging.getLogger(__name__)

QUERY_EVENT = "query-event"
PROFILER_STATUS = "profiler-status"


@dataclass
class Command:
    """Base command. ``reply`` is resolved by the dispatcher."""
    reply: Optional[asyncio.Future] = field(default=None, repr=False, compare=False)


@dataclass
class Connect(Command):
    config: ConnectionConfig = field(default_factory=ConnectionConfig)
    remember_password: bool = True


@dataclass
class Disconnect(Command):
    pass


@dataclass
class StartCapture(Command):
    pass


@dataclass
class StopCapture(Command):
    pass


@dataclass
class LoadConnection(Command):
    pass


class CommandChannel:
    """Queue of commands awaiting the dispatcher."""

    def __init__(self, maxsize: int = 32):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def request(self, command: Command) -> Any:
        """Send a command and wait for its reply.

        Raises:
            Whatever the dispatcher set on the reply, normally CommandError.
        """
        command.reply = asyncio.get_running_loop().create_future()
        await self._queue.put(command)
        return await command.reply

    async def receive(self) -> Command:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()


Handler = Callable[[Any], None]


class PushRouter:
    """Routes backend pushes to subscribers by topic."""

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = {}

    def subscribe(self, topic: str, handler: Handler) -> Callable[[], None]:
        """Subscribe to a topic.

        Returns:
            A function that removes the subscription.
        """
        self._handlers.setdefault(topic, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, topic: str, payload: Any) -> None:
        """Deliver a payload to every handler of the topic, in order."""
        handlers = list(self._handlers.get(topic, []))
        if not handlers:
            logger.debug(f"No subscribers for {topic}")
            return

        for handler in handlers:
            try:
                handler(payload)
            except Exception as e:
                logger.error(f"Handler for {topic} failed: {e}", exc_info=True)
