"""Textual application hosting an eko session."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Sequence
import logging
from pathlib import Path

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.events import Key
from textual.message import Message

from .chat import OllamaBackend
from .config import Config, load_config, save_config
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
    ExportFinished,
    ExternalEvent,
    KeyEvent,
    ModelsLoaded,
)
from .exceptions import ConfigValidationError, EkoError
from .imaging import ImageBackend
from .persistence import PersistenceError, export_conversation
from .session import Session, SessionSettings, SessionView
from .streaming import produce_generation_events
from .task_manager import TaskManager
from .widgets import ConversationView, HeaderBar, InputLine, ModelPicker, StatusLine

LOGGER = logging.getLogger(__name__)

DRAIN_INTERVAL_SECONDS = 1 / 30


def generation_task_name(generation_id: int) -> str:
    return f"generation-{generation_id}"


class EkoApp(App[None], inherit_bindings=False):
    """Modal chat client: every key press goes through the session."""

    TITLE = "eko"
    AUTO_FOCUS = None

    CSS = """
    Screen {
        layout: vertical;
        background: $background;
    }

    #app-root {
        layout: vertical;
        width: 100%;
        height: 1fr;
    }

    #conversation {
        height: 1fr;
        padding: 0 1;
    }

    ModelPicker {
        margin: 0 2;
    }
    """

    class ExternalResult(Message):
        """Carries the outcome of a background job back onto the UI loop."""

        def __init__(self, event: ExternalEvent) -> None:
            super().__init__()
            self.event = event

    def __init__(
        self,
        config: Config | None = None,
        *,
        config_path: Path | None = None,
        image_mode: bool = False,
        initial_prompt: str | None = None,
        text_backend_factory: Callable[[str, int], OllamaBackend] | None = None,
    ) -> None:
        super().__init__()
        self.config = config or Config()
        self.config_path = config_path
        self.initial_prompt = initial_prompt
        self.session = Session(
            settings=SessionSettings(
                model_name=self.config.model,
                service_url=self.config.url,
                image_service_url=self.config.comfyui_url,
                workflow_path=self.config.workflow_path,
            ),
            image_mode=image_mode,
            queue_size=self.config.stream_queue_size,
            status_ttl_seconds=self.config.status_ttl_seconds,
            tldr_threshold=self.config.tldr_threshold,
        )
        self._text_backend_factory = text_backend_factory or (
            lambda host, timeout: OllamaBackend(host=host, timeout=timeout)
        )
        self._text_backends: dict[str, OllamaBackend] = {}
        self._tasks = TaskManager()
        self._last_view: SessionView | None = None
        self._render_lock = asyncio.Lock()

    def compose(self) -> ComposeResult:
        yield HeaderBar(id="header")
        yield StatusLine(id="status_line")
        with Container(id="app-root"):
            yield ConversationView(id="conversation")
            yield ModelPicker(id="model_picker")
            yield InputLine(id="input_line")

    async def on_mount(self) -> None:
        self._w_header = self.query_one(HeaderBar)
        self._w_status = self.query_one(StatusLine)
        self._w_conversation = self.query_one(ConversationView)
        self._w_models = self.query_one(ModelPicker)
        self._w_input = self.query_one(InputLine)
        LOGGER.info(
            "app.started",
            extra={
                "event": "app.started",
                "model": self.session.settings.model_name,
                "image_mode": self.session.image_mode,
            },
        )
        await self._dispatch(self.session.start())
        if self.initial_prompt:
            await self._dispatch(self.session.submit_prompt(self.initial_prompt))
        self.set_interval(DRAIN_INTERVAL_SECONDS, self._drain)

    async def on_unmount(self) -> None:
        """Cancel and await all background tasks during shutdown."""
        await self._tasks.cancel_all()

    async def on_key(self, event: Key) -> None:
        event.stop()
        event.prevent_default()
        key_event = KeyEvent(
            key=event.key,
            character=event.character if event.is_printable else None,
        )
        await self._dispatch(self.session.submit(key_event))

    async def on_eko_app_external_result(self, message: ExternalResult) -> None:
        await self._dispatch(self.session.submit_external_event(message.event))

    async def _drain(self) -> None:
        await self._dispatch(self.session.tick())

    # ------------------------------------------------------------------
    # Effects
    # ------------------------------------------------------------------

    async def _dispatch(self, effects: Sequence[Effect]) -> None:
        """Render the new state, then perform the requested effects."""
        await self._render()
        for effect in effects:
            self._perform(effect)

    def _perform(self, effect: Effect) -> None:
        if isinstance(effect, LoadConfig):
            self._tasks.spawn(self._load_config())
        elif isinstance(effect, ListModels):
            self._tasks.spawn(self._list_models())
        elif isinstance(effect, StartGeneration):
            self._start_generation(effect)
        elif isinstance(effect, CancelGeneration):
            self._tasks.spawn(
                self._tasks.cancel(generation_task_name(effect.handle.id))
            )
        elif isinstance(effect, SaveConfig):
            self._tasks.spawn(self._save_config(effect.model_name))
        elif isinstance(effect, CopyToClipboard):
            self._copy(effect)
        elif isinstance(effect, ExportConversation):
            self._tasks.spawn(self._export(effect))
        elif isinstance(effect, ScrollToTop):
            self._w_conversation.scroll_home(animate=False)
        elif isinstance(effect, ScrollToBottom):
            self._w_conversation.scroll_end(animate=False)
        elif isinstance(effect, RefreshView):
            self._tasks.spawn(self._refresh_turn(effect.turn_id))
        elif isinstance(effect, Quit):
            self.exit()
        else:
            raise TypeError(f"Unsupported effect: {effect!r}")

    def _text_backend(self, host: str) -> OllamaBackend:
        backend = self._text_backends.get(host)
        if backend is None:
            backend = self._text_backend_factory(host, self.config.timeout)
            self._text_backends[host] = backend
        return backend

    def _chunks_for(self, effect: StartGeneration) -> AsyncIterator[str]:
        settings = self.session.settings
        if effect.image_mode:
            image_backend = ImageBackend(
                base_url=settings.image_service_url,
                workflow_path=settings.workflow_path,
                timeout=self.config.timeout,
            )
            return image_backend.generate(effect.prompt)
        backend = self._text_backend(settings.service_url)
        return backend.stream_chat(effect.model_name, list(effect.messages))

    def _start_generation(self, effect: StartGeneration) -> None:
        self._tasks.spawn(
            produce_generation_events(
                effect.handle, self._chunks_for(effect), self.session.generation_queue
            ),
            name=generation_task_name(effect.handle.id),
        )

    def _copy(self, effect: CopyToClipboard) -> None:
        try:
            self.copy_to_clipboard(effect.text)
        except Exception as exc:  # noqa: BLE001 - reported back as a status.
            LOGGER.warning(
                "app.clipboard.failed",
                extra={"event": "app.clipboard.failed", "error": str(exc)},
            )
            self.post_message(
                self.ExternalResult(ClipboardResult(block_id=effect.block_id, error=str(exc)))
            )
            return
        self.post_message(self.ExternalResult(ClipboardResult(block_id=effect.block_id)))

    async def _load_config(self) -> None:
        try:
            config = await asyncio.to_thread(load_config, self.config_path)
        except ConfigValidationError as exc:
            self.post_message(self.ExternalResult(ConfigLoaded(error=str(exc))))
            return
        self.post_message(
            self.ExternalResult(
                ConfigLoaded(
                    model_name=config.model,
                    service_url=config.url,
                    image_service_url=config.comfyui_url,
                    workflow_path=config.workflow_path,
                )
            )
        )

    async def _list_models(self) -> None:
        backend = self._text_backend(self.session.settings.service_url)
        try:
            models = await backend.list_models()
        except EkoError as exc:
            self.post_message(self.ExternalResult(ModelsLoaded(error=str(exc))))
            return
        self.post_message(self.ExternalResult(ModelsLoaded(models=tuple(models))))

    async def _save_config(self, model_name: str) -> None:
        try:
            await asyncio.to_thread(save_config, model_name, self.config_path)
        except (ConfigValidationError, OSError) as exc:
            self.post_message(
                self.ExternalResult(ConfigSaved(model_name=model_name, error=str(exc)))
            )
            return
        self.post_message(self.ExternalResult(ConfigSaved(model_name=model_name)))

    async def _export(self, effect: ExportConversation) -> None:
        try:
            path = await asyncio.to_thread(
                export_conversation, effect.records, effect.filename
            )
        except PersistenceError as exc:
            self.post_message(self.ExternalResult(ExportFinished(error=str(exc))))
            return
        self.post_message(self.ExternalResult(ExportFinished(path=str(path))))

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    async def _refresh_turn(self, turn_id: str) -> None:
        """Re-render a settled turn so its code blocks show their addresses."""
        LOGGER.debug(
            "app.turn.settled",
            extra={"event": "app.turn.settled", "turn_id": turn_id},
        )
        self._w_conversation.invalidate(turn_id)
        await self._render(force=True)

    async def _render(self, force: bool = False) -> None:
        async with self._render_lock:
            await self._render_view(force)

    async def _render_view(self, force: bool) -> None:
        view = self.session.current_view()
        if view == self._last_view and not force:
            return
        self._last_view = view
        self._w_header.show(view)
        self._w_status.show(view)
        self._w_models.show(view)
        self._w_input.show(view)

        conversation = self._w_conversation
        following = conversation.scroll_y >= conversation.max_scroll_y
        await conversation.sync(
            view.turns,
            code_blocks=self.session.code_blocks,
            view_mode=view.view_mode,
            threshold=self.session.tldr_threshold,
            streaming_turn_id=view.streaming_turn_id,
        )
        if following and view.streaming_turn_id is not None:
            conversation.scroll_end(animate=False)
