"""Conversation export to JSON files."""

from __future__ import annotations

from collections.abc import Iterable
import json
import logging
from pathlib import Path
from typing import Any

from .exceptions import EkoError

LOGGER = logging.getLogger(__name__)


class PersistenceError(EkoError):
    """Raised when a conversation cannot be written to disk."""


class PersistenceFormatError(PersistenceError):
    """Raised when a conversation cannot be encoded as JSON."""


def export_conversation(
    records: Iterable[dict[str, Any]],
    filename: str,
    directory: Path | None = None,
) -> Path:
    """Write ``records`` as an indented JSON array and return the file path.

    Relative filenames resolve against ``directory`` (the working directory
    by default). ``.json`` is appended when missing.
    """
    name = filename.strip()
    if not name:
        raise PersistenceError("Export filename must not be empty.")
    if not name.endswith(".json"):
        name = f"{name}.json"
    target = Path(name).expanduser()
    if not target.is_absolute():
        target = (directory or Path.cwd()) / target

    rows = list(records)
    try:
        payload = json.dumps(rows, ensure_ascii=False, indent=2)
    except (TypeError, ValueError) as exc:
        raise PersistenceFormatError(f"Conversation is not serializable: {exc}") from exc
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(payload + "\n", encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"Unable to write {target}: {exc}") from exc

    LOGGER.info(
        "persistence.exported",
        extra={"event": "persistence.exported", "path": str(target), "turns": len(rows)},
    )
    return target
