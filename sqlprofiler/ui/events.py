"""Custom events for UI communication."""

from typing import Optional

from textual.message import Message


class QuerySelected(Message):
    """Event when a row of the query feed is chosen."""

    def __init__(self, event_id: Optional[str]):
        super().__init__()
        self.event_id = event_id


class SessionChanged(Message):
    """Event when the profiler session status changes."""


class UpdateStatusChanged(Message):
    """Event when the update checker shows something new."""
