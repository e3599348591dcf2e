"""Immutable event values consumed by the session.

Three families reach a session: key presses, generation stream events, and
one-shot results of background work (config, model list, clipboard, export).
"""

from __future__ import annotations

from dataclasses import dataclass, field
import time


@dataclass(frozen=True)
class KeyEvent:
    """A normalized key press.

    ``key`` uses Textual key names (``"enter"``, ``"escape"``, ``"ctrl+c"``);
    printable keys carry their ``character``. ``timestamp`` is monotonic
    seconds and drives double-tap detection.
    """

    key: str
    character: str | None = None
    timestamp: float = field(default_factory=time.monotonic)

    @classmethod
    def press(cls, key: str, timestamp: float | None = None) -> KeyEvent:
        """Build an event from a key name or a single printable character."""
        character = key if len(key) == 1 else None
        if timestamp is None:
            return cls(key=key, character=character)
        return cls(key=key, character=character, timestamp=timestamp)

    @property
    def is_printable(self) -> bool:
        return (
            self.character is not None
            and len(self.character) == 1
            and self.character.isprintable()
        )


@dataclass(frozen=True)
class Token:
    """Incremental text produced by a generation."""

    generation_id: int
    turn_id: str
    text: str


@dataclass(frozen=True)
class Done:
    """The generation finished normally."""

    generation_id: int
    turn_id: str


@dataclass(frozen=True)
class Errored:
    """The generation failed; ``message`` is shown in place of the reply."""

    generation_id: int
    turn_id: str
    message: str


@dataclass(frozen=True)
class Cancelled:
    """The generation was abandoned on request."""

    generation_id: int
    turn_id: str


GenerationEvent = Token | Done | Errored | Cancelled
TERMINAL_EVENTS = (Done, Errored, Cancelled)


@dataclass(frozen=True)
class ConfigLoaded:
    """Result of loading the configuration file."""

    model_name: str = ""
    service_url: str = ""
    image_service_url: str = ""
    workflow_path: str = ""
    error: str | None = None


@dataclass(frozen=True)
class ModelsLoaded:
    """Result of listing the models installed on the text service."""

    models: tuple[str, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class ConfigSaved:
    model_name: str
    error: str | None = None


@dataclass(frozen=True)
class ClipboardResult:
    block_id: str
    error: str | None = None


@dataclass(frozen=True)
class ExportFinished:
    path: str | None = None
    error: str | None = None


ExternalEvent = ConfigLoaded | ModelsLoaded | ConfigSaved | ClipboardResult | ExportFinished
