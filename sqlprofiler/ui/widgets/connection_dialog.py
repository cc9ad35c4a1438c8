"""Connection dialog for choosing the server to profile."""

import logging
from typing import Awaitable, Callable, Optional

from rich.markup import escape
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, Select, Static, Switch

from sqlprofiler.core.connection_store import SavedConnection
from sqlprofiler.core.models import ConnectionConfig

logger = logging.getLogger(__name__)

AUTHENTICATION_OPTIONS = [
    ("SQL Server Authentication", "sql"),
    ("Windows Authentication", "windows"),
]

ENCRYPT_OPTIONS = [
    ("Mandatory", "mandatory"),
    ("Optional", "optional"),
    ("Strict", "strict"),
]

ConnectCallback = Callable[[ConnectionConfig, bool], Awaitable[None]]


class ConnectionDialog(ModalScreen):
    """Modal form with the connection parameters.

    The dialog does not close itself on connect; the app dismisses it once the
    backend reports a connection.
    """

    CSS = """
    ConnectionDialog {
        align: center middle;
    }

    ConnectionDialog > Container {
        width: 64;
        height: auto;
        max-height: 44;
        border: thick $background 80%;
        background: $surface;
        padding: 1 2;
    }

    ConnectionDialog .title {
        text-style: bold;
        color: $primary;
        margin-bottom: 1;
    }

    ConnectionDialog .option-row {
        height: 3;
    }

    ConnectionDialog .error {
        color: $error;
        margin-top: 1;
    }

    ConnectionDialog .buttons {
        height: 3;
        margin-top: 1;
    }

    ConnectionDialog Input, ConnectionDialog Select {
        width: 100%;
    }
    """

    BINDINGS = [
        Binding("escape", "close", "Close"),
    ]

    def __init__(
        self,
        on_connect: ConnectCallback,
        saved: Optional[SavedConnection] = None,
        password: str = "",
        error: Optional[str] = None,
        connected: bool = False,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.on_connect = on_connect
        self.saved = saved or SavedConnection()
        self.password = password
        self.error = error
        self.connected = connected
        self.connecting = False
        self.ready = False
        self.closed = False

    def compose(self) -> ComposeResult:
        saved = self.saved
        with Container():
            yield Static("Connect to SQL Server", classes="title")

            yield Label("Server")
            yield Input(value=saved.server_name, placeholder="server\\instance or server,port",
                        id="server_name")

            yield Label("Authentication")
            yield Select(AUTHENTICATION_OPTIONS, value=saved.authentication,
                         allow_blank=False, id="authentication")

            with Container(id="sql_auth"):
                yield Label("Username")
                yield Input(value=saved.username, placeholder="sa", id="username")
                yield Label("Password")
                yield Input(value=self.password, password=True, placeholder="Enter password",
                            id="password")
                with Horizontal(classes="option-row"):
                    yield Switch(value=saved.remember_password, id="remember_password")
                    yield Label("Remember password")

            yield Label("Database")
            yield Input(value=saved.database, placeholder="<default>", id="database")

            yield Label("Encrypt")
            yield Select(ENCRYPT_OPTIONS, value=saved.encrypt, allow_blank=False, id="encrypt")

            with Horizontal(classes="option-row"):
                yield Switch(value=saved.trust_cert, id="trust_cert")
                yield Label("Trust server certificate")

            yield Label("", classes="error", id="error")

            with Horizontal(classes="buttons"):
                yield Button("Connect", variant="primary", id="connect_btn")
                yield Button("Close", variant="default", id="close_btn")

    def on_mount(self) -> None:
        self.ready = True
        self.show_error(self.error)
        self._sync_auth_fields(self.saved.authentication)
        self.set_connected(self.connected)

    def set_connected(self, connected: bool) -> None:
        """Follow the session; the dialog can only be closed while connected."""
        self.connected = connected
        if not self.ready or self.closed:
            return
        self.query_one("#close_btn", Button).display = connected

    def on_select_changed(self, event: Select.Changed) -> None:
        if event.select.id == "authentication":
            self._sync_auth_fields(event.value)

    def _sync_auth_fields(self, authentication: str) -> None:
        self.query_one("#sql_auth", Container).display = authentication == "sql"

    def show_error(self, error: Optional[str]) -> None:
        self.error = error
        if not self.ready or self.closed:
            return
        label = self.query_one("#error", Label)
        label.update(escape(error) if error else "")
        label.display = bool(error)

    def gather(self) -> ConnectionConfig:
        """Read the form into a connection config."""
        return ConnectionConfig(
            server_name=self.query_one("#server_name", Input).value.strip(),
            authentication=self.query_one("#authentication", Select).value,
            username=self.query_one("#username", Input).value,
            password=self.query_one("#password", Input).value,
            database=self.query_one("#database", Input).value.strip(),
            encrypt=self.query_one("#encrypt", Select).value,
            trust_cert=self.query_one("#trust_cert", Switch).value,
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "connect_btn":
            self.action_connect()
        elif event.button.id == "close_btn":
            self.action_close()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.action_connect()

    def action_connect(self) -> None:
        if self.connecting:
            return

        config = self.gather()
        if not config.server_name:
            self.show_error("Please enter a server name")
            return

        remember = self.query_one("#remember_password", Switch).value
        self._set_connecting(True)
        # Runs on the app; the dialog can be dismissed before the reply arrives
        self.app.run_worker(self._submit(config, remember), group="connect", exclusive=True)

    async def _submit(self, config: ConnectionConfig, remember: bool) -> None:
        try:
            await self.on_connect(config, remember)
        finally:
            if not self.closed:
                self._set_connecting(False)

    def _set_connecting(self, connecting: bool) -> None:
        self.connecting = connecting
        button = self.query_one("#connect_btn", Button)
        button.disabled = connecting
        button.label = "Connecting..." if connecting else "Connect"

    def on_unmount(self) -> None:
        self.closed = True

    def action_close(self) -> None:
        """Close only when there is a connection to go back to."""
        if self.connected:
            self.dismiss(None)
