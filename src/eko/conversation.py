"""Conversation log: the ordered turns of one session."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .identifiers import TurnIdAllocator


class Role(str, Enum):
    """Author of a turn."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """One conversation entry. Updates produce a new instance with the same id."""

    id: str
    role: Role
    content: str = ""
    collapsed: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_record(self) -> dict[str, Any]:
        """Return the export representation of this turn."""
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "collapsed": self.collapsed,
            "timestamp": self.created_at.isoformat(),
        }


class ConversationLog:
    """Ordered sequence of turns; insertion order is display order."""

    def __init__(self) -> None:
        self._turns: list[Turn] = []
        self._positions: dict[str, int] = {}
        self._ids = TurnIdAllocator()

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    def append(
        self, role: Role, content: str = "", created_at: datetime | None = None
    ) -> Turn:
        """Create a turn with the next identifier and append it."""
        turn = Turn(
            id=self._ids.allocate(),
            role=role,
            content=content,
            created_at=created_at or datetime.now(UTC),
        )
        self._positions[turn.id] = len(self._turns)
        self._turns.append(turn)
        return turn

    def get(self, turn_id: str) -> Turn | None:
        position = self._positions.get(turn_id)
        return None if position is None else self._turns[position]

    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def is_last(self, turn_id: str) -> bool:
        return bool(self._turns) and self._turns[-1].id == turn_id

    def last_content(self, role: Role) -> str:
        """Return the content of the most recent turn by ``role``, or ``""``."""
        for turn in reversed(self._turns):
            if turn.role is role:
                return turn.content
        return ""

    def _update(self, turn_id: str, **changes: Any) -> Turn:
        position = self._positions.get(turn_id)
        if position is None:
            raise KeyError(turn_id)
        updated = replace(self._turns[position], **changes)
        self._turns[position] = updated
        return updated

    def append_content(self, turn_id: str, text: str) -> Turn:
        current = self.get(turn_id)
        if current is None:
            raise KeyError(turn_id)
        return self._update(turn_id, content=current.content + text)

    def replace_content(self, turn_id: str, text: str) -> Turn:
        return self._update(turn_id, content=text)

    def collapse_longer_than(self, threshold: int) -> int:
        """Collapse every turn whose content exceeds ``threshold`` characters."""
        changed = 0
        for turn in list(self._turns):
            if len(turn.content) > threshold and not turn.collapsed:
                self._update(turn.id, collapsed=True)
                changed += 1
        return changed

    def expand_all(self) -> int:
        changed = 0
        for turn in list(self._turns):
            if turn.collapsed:
                self._update(turn.id, collapsed=False)
                changed += 1
        return changed

    def snapshot(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def history(self, exclude_turn_id: str | None = None) -> list[dict[str, str]]:
        """Return ``role``/``content`` messages for a generation request."""
        return [
            {"role": turn.role.value, "content": turn.content}
            for turn in self._turns
            if turn.id != exclude_turn_id
        ]
