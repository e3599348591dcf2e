"""Input line and model picker, both drawn from the session snapshot."""

from __future__ import annotations

from rich.text import Text
from textual.widgets import Static

from ..modes import Mode
from ..session import SessionView

NORMAL_HINT = "press 'i' for insert mode, ':' for commands, 'y' to yank code, q to quit"


class InputLine(Static):
    """Show the insert or command buffer; key handling lives in the session."""

    DEFAULT_CSS = """
    InputLine {
        height: auto;
        min-height: 3;
        border: round $accent;
        padding: 0 1;
    }
    """

    @staticmethod
    def build_text(view: SessionView) -> Text:
        if view.mode is Mode.INSERT:
            return Text(f"{view.input_text}▌")
        if view.mode is Mode.COMMAND:
            return Text(f":{view.input_text}▌")
        if view.mode is Mode.YANK_CODE:
            return Text("")
        return Text(NORMAL_HINT, style="dim")

    def show(self, view: SessionView) -> None:
        self.update(self.build_text(view))


class ModelPicker(Static):
    """List of available models, visible only while selecting one."""

    DEFAULT_CSS = """
    ModelPicker {
        height: auto;
        border: round $warning;
        padding: 0 1;
    }
    """

    @staticmethod
    def build_text(view: SessionView) -> Text:
        text = Text("Select model (j/k to move, enter to choose, esc to cancel)\n")
        if not view.models:
            text.append("no models available", style="dim")
        for index, name in enumerate(view.models):
            marker = ">" if index == view.selected_index else " "
            current = " (current)" if name == view.model_name else ""
            style = "reverse" if index == view.selected_index else ""
            text.append(f"{marker} {name}{current}\n", style=style)
        return text

    def show(self, view: SessionView) -> None:
        self.display = view.mode is Mode.MODEL_SELECT
        if self.display:
            self.update(self.build_text(view))
