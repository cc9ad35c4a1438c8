"""Query feed and detail widgets."""

from typing import List, Optional, Sequence

from rich.markup import escape
from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.widget import Widget
from textual.widgets import DataTable, Static

from sqlprofiler.core.models import QueryEvent
from sqlprofiler.ui.events import QuerySelected
from sqlprofiler.utils.formatting import (
    clean_sql,
    format_count,
    format_duration,
    format_event_type,
    format_time,
)

COLUMNS = [
    ("Type", "type"),
    ("Time", "time"),
    ("Session", "session"),
    ("Database", "database"),
    ("SQL Text", "sql"),
    ("Duration", "duration"),
    ("CPU", "cpu"),
    ("Reads", "reads"),
]


def feed_row(event: QueryEvent) -> List[Text]:
    """Cell values of one feed row. Running queries are highlighted."""
    style = "yellow" if event.is_running else ""
    sql = clean_sql(event.current_statement or event.sql_text)
    cells = [
        format_event_type(event.event_name),
        format_time(event.start_time),
        str(event.session_id),
        event.database_name,
        sql,
        format_duration(event.elapsed_time),
        format_duration(event.cpu_time),
        format_count(event.logical_reads),
    ]
    return [Text(cell, style=style) for cell in cells]


def empty_hint(connected: bool, capturing: bool) -> str:
    if not connected:
        return "Connect to a server to begin."
    if not capturing:
        return "Press F5 to begin capturing events."
    return "Waiting for database activity..."


class QueryFeed(Widget):
    """Table of captured queries, newest at the bottom."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.data_table: Optional[DataTable] = None
        self.hint: Optional[Static] = None
        self.row_ids: List[str] = []

    def compose(self) -> ComposeResult:
        with Vertical():
            self.data_table = DataTable(
                show_header=True,
                zebra_stripes=True,
                cursor_type="row",
            )
            yield self.data_table
            self.hint = Static("No queries captured yet.", classes="feed-hint")
            yield self.hint

    def on_mount(self) -> None:
        self._ensure_columns()

    def _ensure_columns(self) -> None:
        if not self.data_table.columns:
            for label, key in COLUMNS:
                self.data_table.add_column(label, key=key)

    def show(
        self,
        events: Sequence[QueryEvent],
        selected_id: Optional[str] = None,
        auto_scroll: bool = True,
        connected: bool = False,
        capturing: bool = False,
    ) -> None:
        """Redraw the table from an already projected event list."""
        self._ensure_columns()
        self.data_table.clear()
        self.row_ids = [event.id for event in events]

        for event in events:
            self.data_table.add_row(*feed_row(event), key=event.id)

        self.hint.display = not events
        if not events:
            self.hint.update(f"No queries captured yet.\n{empty_hint(connected, capturing)}")
            return

        if selected_id in self.row_ids:
            self.data_table.move_cursor(row=self.row_ids.index(selected_id))
        elif auto_scroll:
            self.data_table.move_cursor(row=len(self.row_ids) - 1)
            self.data_table.scroll_end(animate=False)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        event.stop()
        self.post_message(QuerySelected(event.row_key.value))


class QueryDetail(Static):
    """Full text and metrics of the selected query."""

    def show(self, event: Optional[QueryEvent]) -> None:
        self.display = event is not None
        if event is None:
            self.update("")
            return

        lines = [
            f"[b]Session {event.session_id}[/b]  {event.event_status.value}  "
            f"{escape(event.login_name)}@{escape(event.host_name)}  {escape(event.program_name)}",
            f"Database: {escape(event.database_name)}  Started: {event.start_time}  "
            f"Captured: {event.captured_at}",
            f"Elapsed {format_duration(event.elapsed_time)}  CPU {format_duration(event.cpu_time)}  "
            f"Wait {format_duration(event.wait_time)} {event.wait_type or ''}",
            f"Reads {format_count(event.reads)}  Writes {format_count(event.writes)}  "
            f"Logical reads {format_count(event.logical_reads)}  Rows {format_count(event.row_count)}",
            "",
            escape(event.sql_text),
        ]
        if event.current_statement and event.current_statement != event.sql_text:
            lines += ["", "[b]Current statement[/b]", escape(event.current_statement)]
        self.update("\n".join(lines))
