"""Input modes and key helpers for the modal state machine."""

from __future__ import annotations

from enum import Enum

DOUBLE_TAP_WINDOW_SECONDS = 0.3

ENTER_KEYS = frozenset({"enter"})
ESCAPE_KEYS = frozenset({"escape", "esc"})
BACKSPACE_KEYS = frozenset({"backspace", "delete"})
NEWLINE_KEYS = frozenset({"shift+enter", "ctrl+j"})


class Mode(str, Enum):
    """Current interpretation context for key presses."""

    NORMAL = "NORMAL"
    INSERT = "INSERT"
    COMMAND = "COMMAND"
    YANK_CODE = "YANK"
    MODEL_SELECT = "MODEL"


class ViewMode(str, Enum):
    """How collapsed turns are displayed."""

    VERBOSE = "verbose"
    TLDR = "tldr"


class DoubleTapDetector:
    """Recognize a key pressed twice within a short window (``g g``)."""

    def __init__(self, window_seconds: float = DOUBLE_TAP_WINDOW_SECONDS) -> None:
        self.window_seconds = window_seconds
        self._pending_key: str | None = None
        self._pending_at = 0.0

    @property
    def pending(self) -> str | None:
        return self._pending_key

    def press(self, key: str, timestamp: float) -> bool:
        """Record ``key`` and return ``True`` if it completes a double tap."""
        if (
            self._pending_key == key
            and 0 <= timestamp - self._pending_at <= self.window_seconds
        ):
            self.reset()
            return True
        self._pending_key = key
        self._pending_at = timestamp
        return False

    def reset(self) -> None:
        self._pending_key = None
        self._pending_at = 0.0
