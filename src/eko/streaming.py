"""Producer side of a generation: turn a chunk stream into queued events."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable
import logging

from .events import Done, Errored, GenerationEvent, Token
from .exceptions import EkoError
from .generation import GenerationHandle

LOGGER = logging.getLogger(__name__)


async def produce_generation_events(
    handle: GenerationHandle,
    chunks: AsyncIterable[str],
    queue: asyncio.Queue[GenerationEvent],
) -> None:
    """Forward ``chunks`` into ``queue`` as tokens followed by a terminal event.

    ``queue.put`` waits while the queue is full, so a slow consumer slows the
    producer down instead of dropping tokens. Cancelling the task stops the
    stream without emitting anything further.
    """
    count = 0
    try:
        async for text in chunks:
            if not text:
                continue
            await queue.put(
                Token(generation_id=handle.id, turn_id=handle.turn_id, text=text)
            )
            count += 1
    except asyncio.CancelledError:
        LOGGER.info(
            "stream.cancelled",
            extra={
                "event": "stream.cancelled",
                "generation_id": handle.id,
                "tokens": count,
            },
        )
        raise
    except EkoError as exc:
        await _emit_error(handle, queue, exc, str(exc))
        return
    except Exception as exc:  # noqa: BLE001 - any chunk source failure ends the turn.
        await _emit_error(handle, queue, exc, f"Unexpected stream failure: {exc}")
        return
    await queue.put(Done(generation_id=handle.id, turn_id=handle.turn_id))
    LOGGER.info(
        "stream.completed",
        extra={"event": "stream.completed", "generation_id": handle.id, "tokens": count},
    )


async def _emit_error(
    handle: GenerationHandle,
    queue: asyncio.Queue[GenerationEvent],
    exc: Exception,
    message: str,
) -> None:
    LOGGER.warning(
        "stream.failed",
        extra={
            "event": "stream.failed",
            "generation_id": handle.id,
            "error_type": type(exc).__name__,
            "error": str(exc),
        },
    )
    await queue.put(
        Errored(generation_id=handle.id, turn_id=handle.turn_id, message=message)
    )
