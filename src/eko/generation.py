"""Generation coordinator: applies streamed events to the conversation log.

A generation is one streaming reply tied to one assistant turn. Producers run
concurrently and push immutable events into a bounded FIFO queue; the session
drains that queue with :meth:`GenerationCoordinator.try_receive_all` and
applies events here, on a single thread. Terminal status is sticky: once a
generation is done, errored, or cancelled nothing else from it is applied.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
import logging

from .codeblocks import CodeBlockIndex
from .conversation import ConversationLog, Role
from .events import Cancelled, Done, Errored, GenerationEvent, Token

LOGGER = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100
ERROR_ANNOTATION = "Error: {message}"
CANCEL_ANNOTATION = " [Stream cancelled]"
# Finished generations kept for status lookups; older ones are forgotten and
# their late events fall through as unknown.
RETAINED_GENERATIONS = 16


class GenerationStatus(str, Enum):
    """Lifecycle of a generation."""

    PENDING = "pending"
    STREAMING = "streaming"
    DONE = "done"
    ERRORED = "errored"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in {
            GenerationStatus.DONE,
            GenerationStatus.ERRORED,
            GenerationStatus.CANCELLED,
        }


@dataclass(frozen=True)
class GenerationHandle:
    """Identifies one generation and the assistant turn it writes into."""

    id: int
    turn_id: str


@dataclass
class Generation:
    handle: GenerationHandle
    status: GenerationStatus = GenerationStatus.PENDING


@dataclass(frozen=True)
class GenerationRequest:
    """What a producer needs to start streaming for ``handle``."""

    handle: GenerationHandle
    messages: tuple[dict[str, str], ...]
    superseded: GenerationHandle | None = None


class GenerationCoordinator:
    """Track the single active generation and fold its events into the log."""

    def __init__(
        self,
        log: ConversationLog,
        index: CodeBlockIndex,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._log = log
        self._index = index
        self._queue: asyncio.Queue[GenerationEvent] = asyncio.Queue(
            maxsize=max(1, queue_size)
        )
        self._generations: dict[int, Generation] = {}
        self._active: Generation | None = None
        self._next_id = 1

    @property
    def queue(self) -> asyncio.Queue[GenerationEvent]:
        """Bounded FIFO queue that producers push events into."""
        return self._queue

    @property
    def active(self) -> GenerationHandle | None:
        """Handle of the non-terminal generation, if any."""
        return self._active.handle if self._active is not None else None

    def status(self, handle: GenerationHandle | int) -> GenerationStatus | None:
        key = handle if isinstance(handle, int) else handle.id
        generation = self._generations.get(key)
        return generation.status if generation is not None else None

    def start(self, target_turn_id: str) -> GenerationRequest:
        """Create a generation writing into ``target_turn_id``.

        Any generation still running is cancelled and made terminal first so
        its late events are ignored.
        """
        superseded = self.cancel_active()
        handle = GenerationHandle(id=self._next_id, turn_id=target_turn_id)
        self._next_id += 1
        generation = Generation(handle=handle)
        self._generations[handle.id] = generation
        self._active = generation
        LOGGER.info(
            "generation.start",
            extra={
                "event": "generation.start",
                "generation_id": handle.id,
                "turn_id": target_turn_id,
            },
        )
        return GenerationRequest(
            handle=handle,
            messages=tuple(self._log.history(exclude_turn_id=target_turn_id)),
            superseded=superseded,
        )

    def cancel(self, handle: GenerationHandle) -> bool:
        """Locally terminate ``handle`` with a cancellation marker.

        Returns ``False`` when the generation is unknown or already terminal.
        Stopping the producer itself is the caller's concern.
        """
        return self.apply(Cancelled(generation_id=handle.id, turn_id=handle.turn_id))

    def cancel_active(self) -> GenerationHandle | None:
        """Cancel the active generation and return its handle, if there was one."""
        handle = self.active
        if handle is None:
            return None
        self.cancel(handle)
        return handle

    def try_receive_all(self) -> list[GenerationEvent]:
        """Remove and return every queued event without blocking."""
        drained: list[GenerationEvent] = []
        while True:
            try:
                drained.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return drained

    def apply(self, event: GenerationEvent) -> bool:
        """Apply one event; return ``True`` when the log or a status changed."""
        generation = self._generations.get(event.generation_id)
        if generation is None:
            LOGGER.debug(
                "generation.event.unknown",
                extra={
                    "event": "generation.event.unknown",
                    "generation_id": event.generation_id,
                },
            )
            return False
        if generation.status.terminal:
            LOGGER.debug(
                "generation.event.after_terminal",
                extra={
                    "event": "generation.event.after_terminal",
                    "generation_id": event.generation_id,
                    "status": generation.status.value,
                    "kind": type(event).__name__,
                },
            )
            return False

        target = generation.handle.turn_id
        if isinstance(event, Token):
            return self._apply_token(generation, event)
        if isinstance(event, Done):
            self._finish(generation, GenerationStatus.DONE)
        elif isinstance(event, Errored):
            if self._log.get(target) is not None:
                self._log.replace_content(
                    target, ERROR_ANNOTATION.format(message=event.message)
                )
            self._finish(generation, GenerationStatus.ERRORED)
            LOGGER.warning(
                "generation.errored",
                extra={
                    "event": "generation.errored",
                    "generation_id": generation.handle.id,
                    "error": event.message,
                },
            )
        elif isinstance(event, Cancelled):
            if self._log.get(target) is not None:
                self._log.append_content(target, CANCEL_ANNOTATION)
            self._finish(generation, GenerationStatus.CANCELLED)
        else:
            raise TypeError(f"Unsupported generation event: {event!r}")
        return True

    def _apply_token(self, generation: Generation, event: Token) -> bool:
        target = generation.handle.turn_id
        turn = self._log.last()
        if (
            event.turn_id != target
            or turn is None
            or turn.id != target
            or turn.role is not Role.ASSISTANT
        ):
            LOGGER.debug(
                "generation.token.stale",
                extra={
                    "event": "generation.token.stale",
                    "generation_id": generation.handle.id,
                    "turn_id": event.turn_id,
                },
            )
            return False
        if not event.text:
            return False
        self._log.append_content(target, event.text)
        generation.status = GenerationStatus.STREAMING
        return True

    def _finish(self, generation: Generation, status: GenerationStatus) -> None:
        generation.status = status
        if self._active is generation:
            self._active = None
        turn = self._log.get(generation.handle.turn_id)
        if turn is not None:
            self._index.rebuild(turn.id, turn.content)
        self._prune_finished()
        LOGGER.info(
            "generation.finished",
            extra={
                "event": "generation.finished",
                "generation_id": generation.handle.id,
                "status": status.value,
            },
        )

    def _prune_finished(self) -> None:
        finished = [
            generation_id
            for generation_id, generation in self._generations.items()
            if generation.status.terminal
        ]
        for generation_id in finished[:-RETAINED_GENERATIONS]:
            del self._generations[generation_id]
