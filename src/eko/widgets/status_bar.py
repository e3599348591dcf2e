"""Header and status line widgets."""

from __future__ import annotations

from rich.text import Text
from textual.widgets import Static

from ..modes import Mode
from ..session import SessionView, StatusLevel

STATUS_STYLES = {
    StatusLevel.INFO: "cyan",
    StatusLevel.SUCCESS: "green",
    StatusLevel.ERROR: "red",
}


class HeaderBar(Static):
    """Model name, turn count, and the image mode tag."""

    DEFAULT_CSS = """
    HeaderBar {
        height: 1;
        border-bottom: solid $panel;
        padding: 0 1;
    }
    """

    @staticmethod
    def build_text(view: SessionView) -> Text:
        text = Text(f"EKO - Model: {view.model_name} | Messages: {len(view.turns)}")
        if view.image_mode:
            text.append("  [image]", style="bold #fe3f01")
        return text

    def show(self, view: SessionView) -> None:
        self.update(self.build_text(view))


class StatusLine(Static):
    """Current mode plus the transient status annotations."""

    DEFAULT_CSS = """
    StatusLine {
        height: 1;
        padding: 0 1;
    }
    """

    @staticmethod
    def build_text(view: SessionView) -> Text:
        text = Text(f"-- {view.mode.value} --", style="bold")
        if view.mode is Mode.YANK_CODE:
            text.append(
                f"  [YANK MODE] Enter code block ID: {view.yank_input}", style="yellow"
            )
        for status in view.statuses:
            text.append("  ")
            text.append(status.text, style=STATUS_STYLES[status.level])
        return text

    def show(self, view: SessionView) -> None:
        self.update(self.build_text(view))
