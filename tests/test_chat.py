"""Tests for the Ollama text backend wrapper."""

from __future__ import annotations

from types import SimpleNamespace
import unittest

import httpx

from eko.chat import OllamaBackend
from eko.exceptions import (
    OllamaConnectionError,
    OllamaModelNotFoundError,
    OllamaStreamingError,
)


class _FakeStream:
    def __init__(self, chunks: list) -> None:
        self._chunks = list(chunks)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._chunks:
            raise StopAsyncIteration
        item = self._chunks.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class _FakeClient:
    def __init__(self, chunks: list | None = None, models=None, error: Exception | None = None) -> None:
        self.chunks = chunks or []
        self.models = models
        self.error = error
        self.calls: list[dict] = []

    async def chat(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return _FakeStream(self.chunks)

    async def list(self):
        if self.error is not None:
            raise self.error
        return self.models


class OllamaBackendTests(unittest.IsolatedAsyncioTestCase):
    """Validate streaming, model listing, and error mapping."""

    async def _collect(self, backend: OllamaBackend) -> list[str]:
        messages = [{"role": "user", "content": "hi"}]
        return [part async for part in backend.stream_chat("llama3.2", messages)]

    async def test_stream_yields_content(self) -> None:
        client = _FakeClient(
            chunks=[
                {"message": {"content": "Hel"}},
                SimpleNamespace(message=SimpleNamespace(content="lo")),
                {"message": {"content": ""}},
                {"done": True},
            ]
        )
        backend = OllamaBackend("http://localhost:11434", client=client)
        self.assertEqual(await self._collect(backend), ["Hel", "lo"])
        self.assertEqual(client.calls[0]["model"], "llama3.2")
        self.assertTrue(client.calls[0]["stream"])

    async def test_connection_failure_mapped(self) -> None:
        client = _FakeClient(error=httpx.ConnectError("refused"))
        backend = OllamaBackend("http://localhost:11434", client=client)
        with self.assertRaises(OllamaConnectionError):
            await self._collect(backend)

    async def test_midstream_failure_mapped(self) -> None:
        client = _FakeClient(chunks=[{"message": {"content": "a"}}, RuntimeError("boom")])
        backend = OllamaBackend("http://localhost:11434", client=client)
        parts: list[str] = []
        with self.assertRaises(OllamaStreamingError):
            async for part in backend.stream_chat("m", []):
                parts.append(part)
        self.assertEqual(parts, ["a"])

    async def test_list_models_accepts_objects_and_dicts(self) -> None:
        client = _FakeClient(
            models=SimpleNamespace(
                models=[
                    SimpleNamespace(model="llama3.2:latest"),
                    SimpleNamespace(model=None, name="qwen2.5"),
                ]
            )
        )
        backend = OllamaBackend("http://localhost:11434", client=client)
        self.assertEqual(await backend.list_models(), ["llama3.2:latest", "qwen2.5"])

        client.models = {"models": [{"name": "phi3"}, {"model": " "}]}
        self.assertEqual(await backend.list_models(), ["phi3"])

    async def test_list_models_failure_mapped(self) -> None:
        backend = OllamaBackend(
            "http://localhost:11434", client=_FakeClient(error=ConnectionError("down"))
        )
        with self.assertRaises(OllamaConnectionError):
            await backend.list_models()


class MapExceptionTests(unittest.TestCase):
    """Validate exception classification."""

    def setUp(self) -> None:
        self.backend = OllamaBackend("http://localhost:11434", client=_FakeClient())

    def test_model_not_found(self) -> None:
        mapped = self.backend._map_exception(
            RuntimeError("model 'x' not found, try pulling it first"), "x"
        )
        self.assertIsInstance(mapped, OllamaModelNotFoundError)
        self.assertIn("'x'", str(mapped))

    def test_generic_error_is_streaming_error(self) -> None:
        mapped = self.backend._map_exception(RuntimeError("unexpected"), "x")
        self.assertIsInstance(mapped, OllamaStreamingError)

    def test_timeout_is_connection_error(self) -> None:
        mapped = self.backend._map_exception(httpx.ReadTimeout("slow"), "x")
        self.assertIsInstance(mapped, OllamaConnectionError)


if __name__ == "__main__":
    unittest.main()
