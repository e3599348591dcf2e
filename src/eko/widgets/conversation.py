"""Scrollable conversation view widget."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from textual.containers import VerticalScroll

from ..codeblocks import CodeBlockIndex
from ..conversation import Turn
from ..modes import ViewMode
from .message import TurnView


class ConversationView(VerticalScroll):
    """A scrollable container holding one :class:`TurnView` per turn."""

    # Keys belong to the session; scrolling is driven by effects.
    can_focus = False

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._views: dict[str, TurnView] = {}
        self._rendered: dict[str, tuple[Any, ...]] = {}

    def invalidate(self, turn_id: str) -> None:
        """Force the next :meth:`sync` to re-render ``turn_id``."""
        self._rendered.pop(turn_id, None)

    async def sync(
        self,
        turns: Sequence[Turn],
        *,
        code_blocks: CodeBlockIndex,
        view_mode: ViewMode,
        threshold: int,
        streaming_turn_id: str | None,
    ) -> None:
        """Mount new turns and re-render the ones whose display changed."""
        for turn in turns:
            blocks = code_blocks.blocks_for(turn.id)
            streaming = turn.id == streaming_turn_id
            key = (
                turn.content,
                turn.collapsed,
                view_mode,
                streaming,
                tuple(block.id for block in blocks),
            )
            view = self._views.get(turn.id)
            if view is None:
                view = TurnView(turn, id=f"turn-{turn.id}")
                self._views[turn.id] = view
                await self.mount(view)
            elif self._rendered.get(turn.id) == key:
                continue
            self._rendered[turn.id] = key
            await view.show(
                turn,
                view_mode=view_mode,
                threshold=threshold,
                streaming=streaming,
                blocks=blocks,
            )
