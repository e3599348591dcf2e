"""Pure parsing helpers for ``:`` commands."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum


class CommandName(str, Enum):
    CONFIG = "config"
    SAVE = "save"
    TLDR = "tldr"
    VERBOSE = "verbose"
    QUIT = "quit"


_ALIASES: dict[str, CommandName] = {
    "config": CommandName.CONFIG,
    "save": CommandName.SAVE,
    "tldr": CommandName.TLDR,
    "verbose": CommandName.VERBOSE,
    "q": CommandName.QUIT,
    "quit": CommandName.QUIT,
}

EXPORT_SUFFIX = ".json"


@dataclass(frozen=True)
class ParsedCommand:
    """A recognized command and its whitespace-separated arguments."""

    name: CommandName
    args: tuple[str, ...] = ()


def parse_command(text: str) -> ParsedCommand | None:
    """Parse a command line typed after ``:``.

    Returns ``None`` for empty input and for unknown command names.
    """
    parts = text.strip().removeprefix(":").split()
    if not parts:
        return None
    name = _ALIASES.get(parts[0].lower())
    if name is None:
        return None
    return ParsedCommand(name=name, args=tuple(parts[1:]))


def export_filename(name: str | None = None, now: datetime | None = None) -> str:
    """Return the export file name, defaulting to a timestamped one."""
    candidate = (name or "").strip()
    if not candidate:
        stamp = (now or datetime.now(UTC)).strftime("%Y%m%d-%H%M%S")
        candidate = f"eko-{stamp}"
    if not candidate.endswith(EXPORT_SUFFIX):
        candidate += EXPORT_SUFFIX
    return candidate
