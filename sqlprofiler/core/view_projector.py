"""Filtered and deduplicated view over the event store."""

from dataclasses import dataclass
from typing import Iterable, List

from sqlprofiler.core.event_store import EventStore
from sqlprofiler.core.models import FILTER_FIELDS, QueryEvent


def matches_filter(event: QueryEvent, filter_text: str) -> bool:
    """Case-insensitive substring match over the searchable text fields."""
    if not filter_text:
        return True

    needle = filter_text.lower()
    return any(needle in getattr(event, name).lower() for name in FILTER_FIELDS)


def project(
    events: Iterable[QueryEvent],
    filter_text: str = "",
    deduplicate: bool = False,
) -> List[QueryEvent]:
    """Derive the visible feed from the full event sequence.

    Filtering runs first. Deduplication then drops an event whose ``sql_text``
    equals the previous surviving event's text; repeats separated by a
    different statement are all kept.
    """
    visible: List[QueryEvent] = []

    for event in events:
        if not matches_filter(event, filter_text):
            continue
        if deduplicate and visible and visible[-1].sql_text == event.sql_text:
            continue
        visible.append(event)

    return visible


@dataclass
class ViewState:
    """Current inputs of the feed view."""
    filter_text: str = ""
    deduplicate: bool = False

    @property
    def narrowed(self) -> bool:
        """True when the view may hide events from the store."""
        return bool(self.filter_text) or self.deduplicate

    def view(self, store: EventStore) -> List[QueryEvent]:
        return project(store.snapshot(), self.filter_text, self.deduplicate)
