"""Single-buffer text input used by insert and command modes."""

from __future__ import annotations

from .events import KeyEvent
from .modes import BACKSPACE_KEYS, NEWLINE_KEYS


class InputBuffer:
    """Editable text with an end-of-buffer cursor.

    Keys the buffer does not understand are ignored so callers can forward
    every key they do not handle themselves.
    """

    def __init__(self, value: str = "") -> None:
        self.value = value

    def __bool__(self) -> bool:
        return bool(self.value)

    def set(self, value: str) -> None:
        self.value = value

    def clear(self) -> None:
        self.value = ""

    def take(self) -> str:
        """Return the current text and empty the buffer."""
        value, self.value = self.value, ""
        return value

    def handle_key(self, event: KeyEvent) -> bool:
        """Apply ``event`` and return ``True`` when the text changed."""
        if event.key in NEWLINE_KEYS:
            self.value += "\n"
            return True
        if event.key in BACKSPACE_KEYS:
            if not self.value:
                return False
            self.value = self.value[:-1]
            return True
        if event.key == "ctrl+u":
            changed = bool(self.value)
            self.value = ""
            return changed
        if event.key == "space":
            self.value += " "
            return True
        if event.is_printable:
            self.value += event.character or ""
            return True
        return False
