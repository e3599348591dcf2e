"""Widget for a single conversation turn."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from rich.markdown import Markdown
from rich.text import Text
from textual.app import ComposeResult
from textual.containers import Vertical
from textual.widgets import Static

from ..codeblocks import CodeBlock, split_segments
from ..conversation import Role, Turn
from ..modes import ViewMode
from .code_block import CodeBlockView

STREAMING_CURSOR = "▌"
THINKING_PLACEHOLDER = "… thinking"


def display_content(turn: Turn, view_mode: ViewMode, threshold: int) -> str | None:
    """Return the truncated text of a collapsed turn, or ``None`` to show it in full."""
    if view_mode is ViewMode.TLDR and turn.collapsed and len(turn.content) > threshold:
        return turn.content[:threshold] + "..."
    return None


class TurnView(Vertical):
    """Render one turn: prose as markdown, fenced code as addressed blocks."""

    DEFAULT_CSS = """
    TurnView {
        height: auto;
        margin-bottom: 1;
    }
    TurnView.role-user > #content-block {
        color: $text;
        text-style: bold;
    }
    TurnView > #content-block {
        height: auto;
    }
    TurnView > .prose-segment {
        height: auto;
    }
    TurnView > #footer-block {
        color: $text-muted;
        border-top: solid $panel;
    }
    """

    def __init__(self, turn: Turn, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.turn = turn
        self.add_class(f"role-{turn.role.value}")
        self._content_widget = Static("", id="content-block")
        self._footer_widget = Static("", id="footer-block")
        self._segment_widgets: list[Static | CodeBlockView] = []

    def compose(self) -> ComposeResult:
        yield self._content_widget
        yield self._footer_widget

    @property
    def footer_text(self) -> str:
        return f"{self.turn.id} | {self.turn.created_at.astimezone():%H:%M:%S}"

    async def show(
        self,
        turn: Turn,
        *,
        view_mode: ViewMode,
        threshold: int,
        streaming: bool,
        blocks: Sequence[CodeBlock] = (),
    ) -> None:
        """Re-render for ``turn``; widgets mounted for the previous state are replaced."""
        self.turn = turn
        for widget in self._segment_widgets:
            await widget.remove()
        self._segment_widgets = []

        is_assistant = turn.role is Role.ASSISTANT
        self._footer_widget.display = is_assistant
        if is_assistant:
            self._footer_widget.update(self.footer_text)

        collapsed = display_content(turn, view_mode, threshold)
        if collapsed is not None:
            self._show_plain(Text(collapsed))
        elif streaming:
            body = turn.content or THINKING_PLACEHOLDER
            self._show_plain(Text(f"{body} {STREAMING_CURSOR}"))
        elif not is_assistant:
            self._show_plain(Text(turn.content))
        else:
            await self._show_segments(turn.content, blocks)

    def _show_plain(self, renderable: Text | Markdown) -> None:
        self._content_widget.display = True
        self._content_widget.update(renderable)

    async def _show_segments(self, content: str, blocks: Sequence[CodeBlock]) -> None:
        segments = split_segments(content.rstrip())
        if all(language is None for _, language in segments):
            self._show_plain(Markdown(content.rstrip()))
            return
        self._content_widget.display = False
        code_index = 0
        for text, language in segments:
            if language is None:
                widget: Static | CodeBlockView = Static(
                    Markdown(text), classes="prose-segment"
                )
            else:
                block_id = blocks[code_index].id if code_index < len(blocks) else None
                code_index += 1
                widget = CodeBlockView(code=text, lang=language, block_id=block_id)
            self._segment_widgets.append(widget)
            await self.mount(widget, before=self._footer_widget)
