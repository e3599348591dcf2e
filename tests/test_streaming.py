"""Tests for the generation event producer."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
import unittest

from eko.events import Done, Errored, Token
from eko.exceptions import OllamaConnectionError
from eko.generation import GenerationHandle, GenerationStatus
from eko.session import Session
from eko.streaming import produce_generation_events

HANDLE = GenerationHandle(id=7, turn_id="ab")


async def _chunks(*parts: str) -> AsyncIterator[str]:
    for part in parts:
        yield part


class ProducerTests(unittest.IsolatedAsyncioTestCase):
    """Validate event ordering, error conversion, and backpressure."""

    async def test_tokens_then_done(self) -> None:
        queue: asyncio.Queue = asyncio.Queue()
        await produce_generation_events(HANDLE, _chunks("a", "", "b"), queue)
        events = [queue.get_nowait() for _ in range(queue.qsize())]
        self.assertEqual(
            events, [Token(7, "ab", "a"), Token(7, "ab", "b"), Done(7, "ab")]
        )

    async def test_domain_error_becomes_errored_event(self) -> None:
        async def failing() -> AsyncIterator[str]:
            yield "partial"
            raise OllamaConnectionError("host down")

        queue: asyncio.Queue = asyncio.Queue()
        await produce_generation_events(HANDLE, failing(), queue)
        events = [queue.get_nowait() for _ in range(queue.qsize())]
        self.assertEqual(events, [Token(7, "ab", "partial"), Errored(7, "ab", "host down")])

    async def test_unexpected_error_still_terminates_generation(self) -> None:
        async def broken() -> AsyncIterator[str]:
            yield "partial"
            raise RuntimeError("bad payload")

        queue: asyncio.Queue = asyncio.Queue()
        await produce_generation_events(HANDLE, broken(), queue)
        events = [queue.get_nowait() for _ in range(queue.qsize())]
        self.assertEqual(events[0], Token(7, "ab", "partial"))
        self.assertIsInstance(events[1], Errored)
        self.assertIn("bad payload", events[1].message)
        self.assertEqual(len(events), 2)

    async def test_session_settles_after_unexpected_error(self) -> None:
        session = Session()
        start = session.submit_prompt("draw a fox")[0]

        async def broken() -> AsyncIterator[str]:
            raise AttributeError("'list' object has no attribute 'get'")
            yield ""

        await produce_generation_events(start.handle, broken(), session.generation_queue)
        session.tick()
        view = session.current_view()
        self.assertIsNone(view.streaming_turn_id)
        self.assertEqual(
            session.generations.status(start.handle), GenerationStatus.ERRORED
        )
        self.assertTrue(view.turns[-1].content.startswith("Error: "))

    async def test_full_queue_applies_backpressure(self) -> None:
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)
        task = asyncio.create_task(
            produce_generation_events(HANDLE, _chunks("a", "b"), queue)
        )
        await asyncio.sleep(0.01)
        self.assertFalse(task.done())
        self.assertEqual(queue.qsize(), 1)

        received = []
        while not task.done() or not queue.empty():
            received.append(await asyncio.wait_for(queue.get(), timeout=1))
        await task
        self.assertEqual(received, [Token(7, "ab", "a"), Token(7, "ab", "b"), Done(7, "ab")])

    async def test_cancellation_emits_nothing_more(self) -> None:
        started = asyncio.Event()

        async def endless() -> AsyncIterator[str]:
            yield "first"
            started.set()
            await asyncio.sleep(3600)
            yield "never"

        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.create_task(produce_generation_events(HANDLE, endless(), queue))
        await started.wait()
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertEqual(queue.get_nowait(), Token(7, "ab", "first"))
        self.assertTrue(queue.empty())


if __name__ == "__main__":
    unittest.main()
