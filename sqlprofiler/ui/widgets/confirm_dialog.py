"""Yes/no confirmation dialog."""

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Label, Static


class ConfirmDialog(ModalScreen[bool]):
    """Modal question answered with a boolean."""

    CSS = """
    ConfirmDialog {
        align: center middle;
    }

    ConfirmDialog > Container {
        width: 60;
        height: auto;
        border: thick $background 80%;
        background: $surface;
        padding: 1 2;
    }

    ConfirmDialog .title {
        text-style: bold;
        color: $primary;
        margin-bottom: 1;
    }

    ConfirmDialog .buttons {
        height: 3;
        margin-top: 1;
    }
    """

    BINDINGS = [
        Binding("escape", "decline", "No"),
        Binding("y", "accept", "Yes"),
        Binding("n", "decline", "No"),
    ]

    def __init__(self, title: str, question: str, accept_label: str = "Yes",
                 decline_label: str = "No", **kwargs):
        super().__init__(**kwargs)
        self.title_text = title
        self.question = question
        self.accept_label = accept_label
        self.decline_label = decline_label

    def compose(self) -> ComposeResult:
        with Container():
            yield Static(self.title_text, classes="title")
            yield Label(self.question)
            with Horizontal(classes="buttons"):
                yield Button(self.accept_label, variant="primary", id="accept_btn")
                yield Button(self.decline_label, variant="default", id="decline_btn")

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "accept_btn":
            self.action_accept()
        else:
            self.action_decline()

    def action_accept(self) -> None:
        self.dismiss(True)

    def action_decline(self) -> None:
        self.dismiss(False)
