"""Terminal UI for live SQL Server query profiling."""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional

# Add parent directory to path for imports
if __name__ == "__main__":
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import click
from rich.markup import escape
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Footer, Header, Input, Label

from sqlprofiler.core.bus import PROFILER_STATUS, QUERY_EVENT, CommandChannel, PushRouter
from sqlprofiler.core.connection_store import ConnectionStore
from sqlprofiler.core.dispatcher import CommandDispatcher
from sqlprofiler.core.errors import UpdaterError
from sqlprofiler.core.event_store import EventStore
from sqlprofiler.core.models import ConnectionConfig, QueryEvent, Tone
from sqlprofiler.core.preferences import Preferences
from sqlprofiler.core.release_updater import ReleaseUpdater, installed_version, relaunch_process
from sqlprofiler.core.replay_backend import ReplayBackend
from sqlprofiler.core.session import ProfilerSession
from sqlprofiler.core.update_checker import Update, UpdateChecker
from sqlprofiler.core.view_projector import ViewState
from sqlprofiler.ui.events import QuerySelected, SessionChanged, UpdateStatusChanged
from sqlprofiler.ui.widgets.confirm_dialog import ConfirmDialog
from sqlprofiler.ui.widgets.connection_dialog import ConnectionDialog
from sqlprofiler.ui.widgets.query_feed import QueryDetail, QueryFeed
from sqlprofiler.utils.config import ConfigManager

logger = logging.getLogger(__name__)

RELAUNCH_EXIT_CODE = 75


class ProfilerApp(App):
    """Live feed of captured queries."""

    TITLE = "Simple SQL Profiler"

    CSS = """
    #toolbar {
        height: 3;
    }

    #filter {
        width: 1fr;
    }

    #toolbar Label {
        padding: 1 1;
    }

    QueryFeed {
        height: 1fr;
    }

    QueryDetail {
        height: auto;
        max-height: 14;
        border-top: solid $primary;
        padding: 0 1;
    }

    .feed-hint {
        color: $text-muted;
        padding: 1 2;
    }

    #status-bar {
        height: 1;
        background: $panel;
    }

    #status-bar Label {
        padding: 0 1;
    }

    #error-text {
        color: $error;
    }

    .tone-info {
        color: $text;
    }

    .tone-success {
        color: $success;
    }

    .tone-error {
        color: $error;
    }
    """

    BINDINGS = [
        Binding("escape", "dismiss_message", "Deselect", show=False),
        Binding("ctrl+w", "disconnect", "Disconnect"),
    ]

    def __init__(self, config_manager: ConfigManager, recording: Optional[Path] = None,
                 interval: Optional[float] = None, **kwargs):
        super().__init__(**kwargs)
        self.config_manager = config_manager
        app_config = config_manager.app_config

        self.router = PushRouter()
        self.channel = CommandChannel()
        self.backend = ReplayBackend(
            self.router,
            recording,
            interval if interval is not None else app_config.replay_interval,
        )
        self.dispatcher = CommandDispatcher(
            self.channel,
            self.backend,
            ConnectionStore(config_manager.config_dir),
        )
        self.session = ProfilerSession(self.channel)
        self.store = EventStore()
        self.preferences = Preferences(config_manager.data_dir / 'preferences.json')
        self.view_state = ViewState(deduplicate=self.preferences.deduplicate)
        self.auto_scroll = self.preferences.auto_scroll
        self.selected_id: Optional[str] = None

        updater = ReleaseUpdater(
            config_manager.updater_config.endpoints,
            config_manager.data_dir / 'updates',
            current_version=app_config.version or installed_version(),
            timeout=config_manager.updater_config.timeout,
            relaunch_hook=lambda: self.exit(return_code=RELAUNCH_EXIT_CODE),
        )
        self.update_checker = UpdateChecker(updater, self._confirm_update)

        self.connection_dialog: Optional[ConnectionDialog] = None
        self.last_password = ""

        keys = config_manager.keybindings
        self.bind(keys.quit, "quit", description="Quit")
        self.bind(keys.connection, "toggle_connection", description="Connection")
        self.bind(keys.capture, "toggle_capture", description="Start/Stop")
        self.bind(keys.clear, "clear", description="Clear")
        self.bind(keys.filter, "focus_filter", description="Filter")
        self.bind(keys.deduplicate, "toggle_deduplicate", description="Dedup")
        self.bind(keys.auto_scroll, "toggle_auto_scroll", description="Auto-scroll")
        self.bind(keys.check_updates, "check_updates", description="Updates")

    def compose(self) -> ComposeResult:
        yield Header()
        with Vertical():
            with Horizontal(id="toolbar"):
                yield Input(placeholder="Filter by text, database, login or program...", id="filter")
                yield Label("", id="toggles")
            self.feed = QueryFeed()
            yield self.feed
            self.detail = QueryDetail("", id="detail")
            yield self.detail
            with Horizontal(id="status-bar"):
                yield Label("Idle", id="capture-state")
                yield Label("0 events", id="event-count")
                yield Label("", id="update-status")
                yield Label("", id="error-text")
        yield Footer()

    async def on_mount(self) -> None:
        self.theme = self.config_manager.app_config.theme
        self.router.subscribe(QUERY_EVENT, self._on_query_event)
        self.router.subscribe(PROFILER_STATUS, self.session.apply_status)
        self.session.add_callback(lambda _: self.post_message(SessionChanged()))
        self.update_checker.add_callback(lambda _: self.post_message(UpdateStatusChanged()))
        self.store.on_clear(self._drop_selection)
        self.dispatcher.start()

        self.detail.show(None)
        self._refresh_toggles()
        self._refresh_feed()
        await self._open_connection_dialog()

        if self.config_manager.app_config.check_updates_on_startup:
            self.run_worker(self.update_checker.check(manual=False), group="updates")

    async def on_unmount(self) -> None:
        await self.backend.close()
        await self.dispatcher.stop()

    # Push handling

    def _on_query_event(self, event: QueryEvent) -> None:
        self.store.upsert(event)
        self._refresh_feed()

    def _drop_selection(self) -> None:
        self.selected_id = None

    # Rendering

    def _refresh_feed(self) -> None:
        status = self.session.status
        events = self.view_state.view(self.store)
        self.feed.show(
            events,
            selected_id=self.selected_id,
            auto_scroll=self.auto_scroll,
            connected=status.connected,
            capturing=status.capturing,
        )
        self.detail.show(self.store.get(self.selected_id))

        count = f"{len(self.store)} events"
        if self.view_state.narrowed:
            count += f"  {len(events)} shown"
        self.query_one("#event-count", Label).update(count)

    def _refresh_toggles(self) -> None:
        flags = []
        if self.view_state.deduplicate:
            flags.append("dedup")
        if self.auto_scroll:
            flags.append("auto-scroll")
        self.query_one("#toggles", Label).update(" | ".join(flags))

    def on_session_changed(self, message: SessionChanged) -> None:
        status = self.session.status
        state = self.query_one("#capture-state", Label)
        if status.capturing:
            state.update("[red]●[/red] Capturing")
        elif status.connected:
            state.update(f"Connected to {escape(self.backend.server or '')}")
        else:
            state.update("Disconnected")

        error = self.session.capture_error
        self.query_one("#error-text", Label).update(escape(error) if error else "")

        if self.session.show_connection:
            if self.connection_dialog is None:
                self.call_later(self._open_connection_dialog)
            else:
                self.connection_dialog.set_connected(status.connected)
                self.connection_dialog.show_error(self.session.connection_error)
        elif self.connection_dialog is not None and self.screen is self.connection_dialog:
            dialog, self.connection_dialog = self.connection_dialog, None
            dialog.dismiss(None)

        self._refresh_feed()

    def on_update_status_changed(self, message: UpdateStatusChanged) -> None:
        status = self.update_checker.status
        label = self.query_one("#update-status", Label)
        for tone in Tone:
            label.remove_class(f"tone-{tone.value}")
        label.add_class(f"tone-{status.tone.value}")
        label.update(escape(status.message) if status.message else "")

    def on_query_selected(self, message: QuerySelected) -> None:
        self.selected_id = None if message.event_id == self.selected_id else message.event_id
        self.detail.show(self.store.get(self.selected_id))

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "filter":
            self.view_state.filter_text = event.value
            self._refresh_feed()

    # Connection dialog

    async def _open_connection_dialog(self) -> None:
        if self.connection_dialog is not None or not self.session.show_connection:
            return

        saved = await self.session.load_connection()
        status = self.session.status
        self.connection_dialog = ConnectionDialog(
            on_connect=self._connect,
            saved=saved,
            password=self.last_password,
            error=self.session.connection_error,
            connected=status.connected,
        )
        self.push_screen(self.connection_dialog, self._connection_dialog_closed)

    def _connection_dialog_closed(self, result) -> None:
        self.connection_dialog = None
        if self.session.show_connection and self.session.status.connected:
            self.session.toggle_connection_surface()

    async def _connect(self, config: ConnectionConfig, remember_password: bool) -> None:
        self.last_password = config.password
        await self.session.connect(config, remember_password)

    # Updates

    async def _confirm_update(self, update: Update) -> bool:
        answer = asyncio.get_running_loop().create_future()

        def resolve(result) -> None:
            if not answer.done():
                answer.set_result(bool(result))
            # The connection dialog may have been waiting underneath
            self.post_message(SessionChanged())

        current = update.current_version or "unknown"
        self.push_screen(
            ConfirmDialog(
                "Update available",
                f"Version {update.version} is available (installed: {current}). Install now?",
                accept_label="Install",
                decline_label="Later",
            ),
            resolve,
        )
        return await answer

    # Actions

    async def action_toggle_capture(self) -> None:
        if not self.session.status.connected:
            self.notify("Connect to a server first", severity="warning")
            return
        await self.session.toggle_capture()

    async def action_disconnect(self) -> None:
        if self.session.status.connected:
            await self.session.disconnect()

    def action_clear(self) -> None:
        self.store.clear()
        self._refresh_feed()

    def action_focus_filter(self) -> None:
        self.query_one("#filter", Input).focus()

    def action_toggle_deduplicate(self) -> None:
        self.view_state.deduplicate = not self.view_state.deduplicate
        self.preferences.deduplicate = self.view_state.deduplicate
        self._refresh_toggles()
        self._refresh_feed()

    def action_toggle_auto_scroll(self) -> None:
        self.auto_scroll = not self.auto_scroll
        self.preferences.auto_scroll = self.auto_scroll
        self._refresh_toggles()

    async def action_toggle_connection(self) -> None:
        if self.connection_dialog is not None:
            self.connection_dialog.action_close()
            return
        self.session.toggle_connection_surface()

    def action_check_updates(self) -> None:
        if self.update_checker.in_flight:
            self.notify("An update check is already running")
            return
        self.run_worker(self.update_checker.check(manual=True), group="updates")

    def action_dismiss_message(self) -> None:
        if self.update_checker.status.message and not self.update_checker.in_flight:
            self.update_checker.dismiss()
        elif self.selected_id is not None:
            self.selected_id = None
            self.detail.show(None)


def setup_logging(log_dir: Path, debug: bool) -> None:
    """Log to a file; with debug also to the console."""
    log_dir.mkdir(parents=True, exist_ok=True)
    handlers = [logging.FileHandler(log_dir / 'app.log', mode='a')]
    if debug:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        handlers.append(console_handler)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )

    # Silence other noisy loggers
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('textual').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)


@click.command()
@click.option('--debug', is_flag=True, help='Enable debug logging to console')
@click.option('--config', '-c', type=click.Path(exists=True), help='Path to configuration YAML file')
@click.option('--replay', '-r', type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help='Recorded query events (JSON lines or YAML) to replay as the capture source')
@click.option('--interval', type=float, default=None, help='Seconds between replayed events')
def main(debug, config, replay, interval):
    """Simple SQL Profiler - live query feed in the terminal."""
    config_manager = ConfigManager()
    setup_logging(config_manager.data_dir, debug)
    config_manager.load_config(config)

    app = ProfilerApp(config_manager, recording=replay, interval=interval)
    app.run()

    if app.return_code == RELAUNCH_EXIT_CODE:
        logger.info("Restarting after update")
        try:
            relaunch_process()
        except UpdaterError as e:
            click.echo(f"Update installed. Please restart manually ({e}).", err=True)
            sys.exit(1)
    sys.exit(app.return_code or 0)


if __name__ == "__main__":
    main()
