"""Code block widget labelled with its yank address."""

from __future__ import annotations

from typing import Any

from rich.syntax import Syntax
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Label, Static


class CodeBlockView(Vertical):
    """Render a fenced code block with its address in the header row."""

    DEFAULT_CSS = """
    CodeBlockView {
        height: auto;
        margin: 1 0;
        border: solid $panel;
        background: $surface-darken-1;
    }
    CodeBlockView > #code-header {
        height: 1;
        padding: 0 1;
        background: $panel;
    }
    CodeBlockView > #code-header > #block-id {
        width: auto;
        color: $warning;
        margin-right: 1;
    }
    CodeBlockView > #code-header > #lang-label {
        width: 1fr;
        color: $text-muted;
    }
    CodeBlockView > #code-body {
        height: auto;
        padding: 0 1;
    }
    """

    def __init__(
        self, code: str, lang: str = "", block_id: str | None = None, **kwargs: Any
    ) -> None:
        super().__init__(**kwargs)
        self.code = code
        self.lang = lang
        self.block_id = block_id

    @property
    def header_text(self) -> str:
        return f"[{self.block_id}]" if self.block_id else ""

    def compose(self) -> ComposeResult:
        with Horizontal(id="code-header"):
            yield Label(self.header_text, id="block-id")
            yield Label(self.lang or "code", id="lang-label")
        syntax = Syntax(
            self.code,
            self.lang or "text",
            theme="monokai",
            line_numbers=False,
            word_wrap=True,
        )
        yield Static(syntax, id="code-body")
