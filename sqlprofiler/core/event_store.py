"""Ordered, upsert-by-id collection of captured query events."""

import logging
from typing import Callable, Dict, List, Optional, Tuple

from sqlprofiler.core.models import METRIC_FIELDS, QueryEvent

logger = logging.getLogger(__name__)


class EventStore:
    """Holds every query event seen since the last clear.

    Entries keep the position of their first observation. Updates for a known
    id replace the entry in place so the feed never jumps under the user.
    """

    def __init__(self):
        self._events: List[QueryEvent] = []
        self._positions: Dict[str, int] = {}
        self._clear_callbacks: List[Callable[[], None]] = []

    def upsert(self, event: QueryEvent) -> bool:
        """Insert a new event or replace the existing one with the same id.

        Returns:
            True if the event was appended, False if it replaced an entry.
        """
        position = self._positions.get(event.id)
        if position is None:
            self._positions[event.id] = len(self._events)
            self._events.append(event)
            return True

        previous = self._events[position]
        if previous.is_running:
            regressed = [
                name for name in METRIC_FIELDS
                if getattr(event, name) < getattr(previous, name)
            ]
            if regressed:
                logger.warning(
                    f"Metrics went backwards for event {event.id}: {', '.join(regressed)}"
                )

        self._events[position] = event
        return False

    def clear(self) -> None:
        """Remove every event and tell listeners that selections are stale."""
        count = len(self._events)
        self._events = []
        self._positions = {}
        logger.info(f"Cleared {count} events")

        for callback in self._clear_callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Clear callback error: {e}")

    def on_clear(self, callback: Callable[[], None]) -> None:
        """Register a callback run after every clear."""
        self._clear_callbacks.append(callback)

    def snapshot(self) -> Tuple[QueryEvent, ...]:
        """Immutable view of the events in feed order."""
        return tuple(self._events)

    def get(self, event_id: Optional[str]) -> Optional[QueryEvent]:
        position = self._positions.get(event_id)
        if position is None:
            return None
        return self._events[position]

    def position(self, event_id: str) -> Optional[int]:
        return self._positions.get(event_id)

    def __len__(self) -> int:
        return len(self._events)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._positions
