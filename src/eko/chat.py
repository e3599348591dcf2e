"""Async Ollama client wrapper that streams reply text."""

from __future__ import annotations

from collections.abc import AsyncIterator
import logging
from typing import Any

import httpx
from ollama import AsyncClient

from .exceptions import (
    EkoError,
    OllamaConnectionError,
    OllamaModelNotFoundError,
    OllamaStreamingError,
)

LOGGER = logging.getLogger(__name__)


class OllamaBackend:
    """Stateless text backend: every call carries its full message history."""

    def __init__(self, host: str, timeout: int = 120, client: Any | None = None) -> None:
        self.host = host
        self.timeout = timeout
        self._client = client if client is not None else AsyncClient(host=host, timeout=timeout)

    async def stream_chat(
        self, model: str, messages: list[dict[str, str]]
    ) -> AsyncIterator[str]:
        """Yield content fragments of the reply to ``messages``."""
        LOGGER.info(
            "chat.stream.start",
            extra={
                "event": "chat.stream.start",
                "model": model,
                "message_count": len(messages),
            },
        )
        try:
            stream = await self._client.chat(model=model, messages=messages, stream=True)
            async for chunk in stream:
                text = self._extract_chunk_text(chunk)
                if text:
                    yield text
        except EkoError:
            raise
        except Exception as exc:
            raise self._map_exception(exc, model) from exc
        LOGGER.info(
            "chat.stream.complete",
            extra={"event": "chat.stream.complete", "model": model},
        )

    async def list_models(self) -> list[str]:
        """Return available model names from Ollama."""
        try:
            response = await self._client.list()
        except Exception as exc:
            raise self._map_exception(exc, "") from exc

        models: Any = None
        if hasattr(response, "models"):
            models = response.models
        elif isinstance(response, dict):
            models = response.get("models")

        names: list[str] = []
        for model in models or []:
            for key in ("model", "name"):
                if isinstance(model, dict):
                    value = model.get(key)
                else:
                    value = getattr(model, key, None)
                if isinstance(value, str) and value.strip():
                    names.append(value.strip())
                    break
        return names

    @staticmethod
    def _extract_chunk_text(chunk: Any) -> str:
        """Extract streamed token text from an Ollama chunk payload."""
        message = getattr(chunk, "message", None)
        if message is None and isinstance(chunk, dict):
            message = chunk.get("message")
        if isinstance(message, dict):
            value = message.get("content")
        else:
            value = getattr(message, "content", None)
        return value if isinstance(value, str) else ""

    def _map_exception(self, exc: Exception, model: str) -> EkoError:
        if isinstance(exc, EkoError):
            return exc

        if isinstance(
            exc,
            (
                httpx.ConnectError,
                httpx.ConnectTimeout,
                httpx.ReadTimeout,
                httpx.NetworkError,
                ConnectionError,
            ),
        ):
            return OllamaConnectionError(f"Unable to connect to Ollama host {self.host}.")

        lower_message = str(exc).lower()
        if "model" in lower_message and (
            "not found" in lower_message or "404" in lower_message
        ):
            return OllamaModelNotFoundError(
                f"Model {model!r} was not found on {self.host}."
            )

        return OllamaStreamingError(
            f"Failed to stream response from Ollama at {self.host}: {exc}"
        )
