"""Session engine: modal key handling over a streaming conversation.

A :class:`Session` is the single writer of the conversation log, the code
block index, the current mode, and the active generation. Every public call
first drains queued generation events without blocking, then handles exactly
one input, and returns the side effects the runtime must perform. The session
itself never performs I/O, so it can be driven synchronously in tests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
import logging
import time

from .codeblocks import CodeBlockIndex
from .commands import CommandName, ParsedCommand, export_filename, parse_command
from .conversation import ConversationLog, Role, Turn
from .effects import (
    CancelGeneration,
    CopyToClipboard,
    Effect,
    ExportConversation,
    ListModels,
    LoadConfig,
    Quit,
    RefreshView,
    SaveConfig,
    ScrollToBottom,
    ScrollToTop,
    StartGeneration,
)
from .events import (
    ClipboardResult,
    ConfigLoaded,
    ConfigSaved,
    Done,
    Errored,
    ExportFinished,
    ExternalEvent,
    GenerationEvent,
    KeyEvent,
    ModelsLoaded,
    TERMINAL_EVENTS,
)
from .generation import DEFAULT_QUEUE_SIZE, GenerationCoordinator
from .modes import (
    BACKSPACE_KEYS,
    ENTER_KEYS,
    ESCAPE_KEYS,
    DoubleTapDetector,
    Mode,
    ViewMode,
)
from .textinput import InputBuffer

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "dolphin-phi"
DEFAULT_SERVICE_URL = "http://localhost:11434"
DEFAULT_IMAGE_SERVICE_URL = "http://localhost:8188"
DEFAULT_WORKFLOW_PATH = "~/lab/model/workflow/default.json"
FALLBACK_MODELS: tuple[str, ...] = (
    "dolphin-phi",
    "llama2-uncensored",
    "mistral",
    "qwen3:1.7b",
    "gemma3",
)
TLDR_THRESHOLD = 100
STATUS_TTL_SECONDS = 3.0
MAX_STATUSES = 5


class StatusLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class StatusMessage:
    """A transient annotation shown to the user."""

    text: str
    level: StatusLevel
    created_at: float


@dataclass(frozen=True)
class SessionSettings:
    """Service settings as last reported by the configuration loader."""

    model_name: str = DEFAULT_MODEL
    service_url: str = DEFAULT_SERVICE_URL
    image_service_url: str = DEFAULT_IMAGE_SERVICE_URL
    workflow_path: str = DEFAULT_WORKFLOW_PATH


@dataclass(frozen=True)
class SessionView:
    """Read-only snapshot handed to the rendering layer."""

    mode: Mode
    turns: tuple[Turn, ...]
    statuses: tuple[StatusMessage, ...]
    input_text: str
    yank_input: str
    settings: SessionSettings
    models: tuple[str, ...]
    selected_index: int
    view_mode: ViewMode
    streaming_turn_id: str | None
    image_mode: bool
    revision: int

    @property
    def model_name(self) -> str:
        return self.settings.model_name


class Session:
    """Compose the conversation log, code block index, modes and generations."""

    def __init__(
        self,
        *,
        settings: SessionSettings | None = None,
        image_mode: bool = False,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        status_ttl_seconds: float = STATUS_TTL_SECONDS,
        tldr_threshold: int = TLDR_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.log = ConversationLog()
        self.code_blocks = CodeBlockIndex()
        self.generations = GenerationCoordinator(
            self.log, self.code_blocks, queue_size=queue_size
        )
        self.settings = settings or SessionSettings()
        self.image_mode = image_mode
        self.mode = Mode.NORMAL
        self.view_mode = ViewMode.VERBOSE
        self.input = InputBuffer()
        self.yank_input = ""
        self.models: list[str] = []
        self.selected_index = 0
        self.status_ttl_seconds = status_ttl_seconds
        self.tldr_threshold = tldr_threshold
        self._clock = clock
        self._statuses: list[StatusMessage] = []
        self._double_tap = DoubleTapDetector()
        self._revision = 0

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    def start(self) -> list[Effect]:
        """Effects to run once when the session comes up."""
        return [LoadConfig()]

    def submit(self, event: KeyEvent) -> list[Effect]:
        """Handle one key press."""
        effects = self._drain()
        effects.extend(self._handle_key(event))
        return effects

    def submit_generation_event(self, event: GenerationEvent) -> list[Effect]:
        """Apply a generation event delivered directly rather than via the queue."""
        effects = self._drain()
        effects.extend(self._apply_generation_event(event))
        return effects

    def submit_external_event(self, event: ExternalEvent) -> list[Effect]:
        """Handle the result of a background config, model, clipboard or export task."""
        effects = self._drain()
        effects.extend(self._handle_external(event))
        return effects

    def submit_prompt(self, text: str) -> list[Effect]:
        """Send ``text`` as if typed in insert mode and confirmed with enter."""
        effects = self._drain()
        if text.strip():
            effects.extend(self._send(text))
        return effects

    def tick(self) -> list[Effect]:
        """Drain pending generation events with no other input."""
        return self._drain()

    def current_view(self, now: float | None = None) -> SessionView:
        instant = self._clock() if now is None else now
        self._statuses = [
            status
            for status in self._statuses
            if instant - status.created_at < self.status_ttl_seconds
        ]
        active = self.generations.active
        return SessionView(
            mode=self.mode,
            turns=self.log.snapshot(),
            statuses=tuple(self._statuses),
            input_text=self.input.value,
            yank_input=self.yank_input,
            settings=self.settings,
            models=tuple(self.models),
            selected_index=self.selected_index,
            view_mode=self.view_mode,
            streaming_turn_id=active.turn_id if active is not None else None,
            image_mode=self.image_mode,
            revision=self._revision,
        )

    @property
    def generation_queue(self) -> asyncio.Queue[GenerationEvent]:
        """Queue that generation producers push their events into."""
        return self.generations.queue

    @property
    def revision(self) -> int:
        """Counter bumped whenever displayed conversation content changes."""
        return self._revision

    # ------------------------------------------------------------------
    # Generation events
    # ------------------------------------------------------------------

    def _drain(self) -> list[Effect]:
        effects: list[Effect] = []
        for event in self.generations.try_receive_all():
            effects.extend(self._apply_generation_event(event))
        return effects

    def _apply_generation_event(self, event: GenerationEvent) -> list[Effect]:
        if not self.generations.apply(event):
            return []
        self._revision += 1
        if not isinstance(event, TERMINAL_EVENTS):
            return []
        effects: list[Effect] = [RefreshView(turn_id=event.turn_id)]
        if isinstance(event, (Done, Errored)):
            effects.append(ScrollToBottom())
        return effects

    def _send(self, text: str) -> list[Effect]:
        effects: list[Effect] = []
        superseded = self.generations.cancel_active()
        if superseded is not None:
            effects.append(CancelGeneration(handle=superseded))
        self.log.append(Role.USER, text)
        placeholder = self.log.append(Role.ASSISTANT, "")
        request = self.generations.start(placeholder.id)
        self._revision += 1
        LOGGER.info(
            "session.prompt.submitted",
            extra={
                "event": "session.prompt.submitted",
                "turn_id": placeholder.id,
                "model": self.settings.model_name,
                "image_mode": self.image_mode,
            },
        )
        effects.append(
            StartGeneration(
                handle=request.handle,
                model_name=self.settings.model_name,
                messages=request.messages,
                image_mode=self.image_mode,
            )
        )
        effects.append(ScrollToBottom())
        return effects

    # ------------------------------------------------------------------
    # Key handling
    # ------------------------------------------------------------------

    def _set_mode(self, mode: Mode) -> None:
        if mode is not self.mode:
            LOGGER.debug(
                "session.mode.transition",
                extra={
                    "event": "session.mode.transition",
                    "from_mode": self.mode.value,
                    "to_mode": mode.value,
                },
            )
        self.mode = mode

    def _handle_key(self, event: KeyEvent) -> list[Effect]:
        if self.mode is Mode.NORMAL:
            return self._normal_key(event)
        if self.mode is Mode.INSERT:
            return self._insert_key(event)
        if self.mode is Mode.COMMAND:
            return self._command_key(event)
        if self.mode is Mode.YANK_CODE:
            return self._yank_key(event)
        if self.mode is Mode.MODEL_SELECT:
            return self._model_select_key(event)
        raise ValueError(f"Unhandled mode: {self.mode!r}")

    def _normal_key(self, event: KeyEvent) -> list[Effect]:
        key = event.character if event.is_printable else event.key
        if key != "g":
            self._double_tap.reset()

        if key == "i":
            self.input.clear()
            self._set_mode(Mode.INSERT)
        elif key == "o":
            self.input.set(self.log.last_content(Role.USER))
            self._set_mode(Mode.INSERT)
        elif key == "O":
            self.input.set(self.log.last_content(Role.ASSISTANT))
            self._set_mode(Mode.INSERT)
        elif key == ":":
            self.input.clear()
            self._set_mode(Mode.COMMAND)
        elif key == "y":
            self.yank_input = ""
            self._set_mode(Mode.YANK_CODE)
        elif key == "g":
            if self._double_tap.press("g", event.timestamp):
                return [ScrollToTop()]
        elif key == "G":
            return [ScrollToBottom()]
        elif key == "ctrl+c":
            cancelled = self.generations.cancel_active()
            if cancelled is None:
                return [Quit()]
            self._revision += 1
            LOGGER.info(
                "session.generation.interrupted",
                extra={
                    "event": "session.generation.interrupted",
                    "generation_id": cancelled.id,
                },
            )
            return [CancelGeneration(handle=cancelled), RefreshView(cancelled.turn_id)]
        elif key == "q":
            return [Quit()]
        return []

    def _insert_key(self, event: KeyEvent) -> list[Effect]:
        if event.key in ENTER_KEYS:
            if not self.input.value.strip():
                return []
            text = self.input.take()
            self._set_mode(Mode.NORMAL)
            return self._send(text)
        if event.key in ESCAPE_KEYS:
            self.input.clear()
            self._set_mode(Mode.NORMAL)
            return []
        self.input.handle_key(event)
        return []

    def _command_key(self, event: KeyEvent) -> list[Effect]:
        if event.key in ENTER_KEYS:
            text = self.input.take()
            self._set_mode(Mode.NORMAL)
            return self._run_command(text)
        if event.key in ESCAPE_KEYS:
            self.input.clear()
            self._set_mode(Mode.NORMAL)
            return []
        self.input.handle_key(event)
        return []

    def _yank_key(self, event: KeyEvent) -> list[Effect]:
        if event.key in ENTER_KEYS:
            address = self.yank_input.strip()
            self.yank_input = ""
            self._set_mode(Mode.NORMAL)
            if not address:
                return []
            block = self.code_blocks.get(address)
            if block is None:
                self._add_status("✖ Invalid code ID", StatusLevel.ERROR)
                return []
            self._add_status(f"✔ Copied {block.id}", StatusLevel.SUCCESS)
            return [CopyToClipboard(text=block.content, block_id=block.id)]
        if event.key in ESCAPE_KEYS:
            self.yank_input = ""
            self._set_mode(Mode.NORMAL)
        elif event.key in BACKSPACE_KEYS:
            self.yank_input = self.yank_input[:-1]
        elif event.is_printable:
            self.yank_input += event.character or ""
        return []

    def _model_select_key(self, event: KeyEvent) -> list[Effect]:
        key = event.character if event.is_printable else event.key
        if key in ("j", "down"):
            if self.selected_index < len(self.models) - 1:
                self.selected_index += 1
        elif key in ("k", "up"):
            if self.selected_index > 0:
                self.selected_index -= 1
        elif event.key in ENTER_KEYS:
            self._set_mode(Mode.NORMAL)
            if not 0 <= self.selected_index < len(self.models):
                self._add_status("✖ No model available to select", StatusLevel.ERROR)
                return []
            model_name = self.models[self.selected_index]
            self.settings = replace(self.settings, model_name=model_name)
            self._add_status(f"Model: {model_name}", StatusLevel.INFO)
            return [SaveConfig(model_name=model_name)]
        elif event.key in ESCAPE_KEYS:
            self._set_mode(Mode.NORMAL)
        return []

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _run_command(self, text: str) -> list[Effect]:
        command = parse_command(text)
        if command is None:
            if text.strip():
                LOGGER.debug(
                    "session.command.unknown",
                    extra={"event": "session.command.unknown", "command": text.strip()},
                )
            return []
        return self._execute(command)

    def _execute(self, command: ParsedCommand) -> list[Effect]:
        if command.name is CommandName.CONFIG:
            self.selected_index = 0
            if self.settings.model_name in self.models:
                self.selected_index = self.models.index(self.settings.model_name)
            self._set_mode(Mode.MODEL_SELECT)
            return []
        if command.name is CommandName.SAVE:
            filename = export_filename(command.args[0] if command.args else None)
            records = tuple(turn.to_record() for turn in self.log)
            return [ExportConversation(records=records, filename=filename)]
        if command.name is CommandName.TLDR:
            self.view_mode = ViewMode.TLDR
            self.log.collapse_longer_than(self.tldr_threshold)
            self._revision += 1
            return []
        if command.name is CommandName.VERBOSE:
            self.view_mode = ViewMode.VERBOSE
            self.log.expand_all()
            self._revision += 1
            return []
        if command.name is CommandName.QUIT:
            return [Quit()]
        raise ValueError(f"Unhandled command: {command.name!r}")

    # ------------------------------------------------------------------
    # Background results
    # ------------------------------------------------------------------

    def _handle_external(self, event: ExternalEvent) -> list[Effect]:
        if isinstance(event, ConfigLoaded):
            return self._on_config_loaded(event)
        if isinstance(event, ModelsLoaded):
            self._on_models_loaded(event)
        elif isinstance(event, ConfigSaved):
            if event.error:
                self._add_status("✖ Failed to save config", StatusLevel.ERROR)
        elif isinstance(event, ClipboardResult):
            if event.error:
                self._statuses = [
                    status
                    for status in self._statuses
                    if status.text != f"✔ Copied {event.block_id}"
                ]
                self._add_status("✖ Failed to copy", StatusLevel.ERROR)
        elif isinstance(event, ExportFinished):
            if event.error or not event.path:
                self._add_status(
                    f"✖ Export failed: {event.error or 'unknown error'}",
                    StatusLevel.ERROR,
                )
            else:
                self._add_status(f"✔ Saved {event.path}", StatusLevel.SUCCESS)
        else:
            raise TypeError(f"Unsupported external event: {event!r}")
        return []

    def _on_config_loaded(self, event: ConfigLoaded) -> list[Effect]:
        if event.error:
            LOGGER.warning(
                "session.config.fallback",
                extra={"event": "session.config.fallback", "error": event.error},
            )
            self._add_status("✖ Config unreadable, using defaults", StatusLevel.ERROR)
        else:
            self.settings = SessionSettings(
                model_name=event.model_name or self.settings.model_name,
                service_url=event.service_url or self.settings.service_url,
                image_service_url=(
                    event.image_service_url or self.settings.image_service_url
                ),
                workflow_path=event.workflow_path or self.settings.workflow_path,
            )
        return [ListModels()]

    def _on_models_loaded(self, event: ModelsLoaded) -> None:
        if event.error or not event.models:
            LOGGER.warning(
                "session.models.fallback",
                extra={"event": "session.models.fallback", "error": event.error},
            )
            self.models = list(FALLBACK_MODELS)
        else:
            self.models = list(event.models)
        if self.selected_index >= len(self.models):
            self.selected_index = max(0, len(self.models) - 1)

    def _add_status(self, text: str, level: StatusLevel) -> None:
        self._statuses.append(
            StatusMessage(text=text, level=level, created_at=self._clock())
        )
        del self._statuses[:-MAX_STATUSES]
