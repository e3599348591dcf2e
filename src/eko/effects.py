"""Side-effect requests returned by the session for the runtime to perform.

The session never does I/O. Each effect below is executed elsewhere and its
outcome, when there is one, comes back as an event.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .generation import GenerationHandle


@dataclass(frozen=True)
class LoadConfig:
    pass


@dataclass(frozen=True)
class ListModels:
    pass


@dataclass(frozen=True)
class StartGeneration:
    """Begin streaming into ``handle.turn_id``; results arrive on the queue."""

    handle: GenerationHandle
    model_name: str
    messages: tuple[dict[str, str], ...]
    image_mode: bool = False

    @property
    def prompt(self) -> str:
        """Content of the latest user message, used by the image backend."""
        for message in reversed(self.messages):
            if message.get("role") == "user":
                return message.get("content", "")
        return ""


@dataclass(frozen=True)
class CancelGeneration:
    handle: GenerationHandle


@dataclass(frozen=True)
class SaveConfig:
    model_name: str


@dataclass(frozen=True)
class CopyToClipboard:
    text: str
    block_id: str


@dataclass(frozen=True)
class ExportConversation:
    records: tuple[dict[str, Any], ...]
    filename: str


@dataclass(frozen=True)
class ScrollToTop:
    pass


@dataclass(frozen=True)
class ScrollToBottom:
    pass


@dataclass(frozen=True)
class RefreshView:
    """Content of ``turn_id`` settled; re-render it with code block addresses."""

    turn_id: str


@dataclass(frozen=True)
class Quit:
    pass


Effect = (
    LoadConfig
    | ListModels
    | StartGeneration
    | CancelGeneration
    | SaveConfig
    | CopyToClipboard
    | ExportConversation
    | ScrollToTop
    | ScrollToBottom
    | RefreshView
    | Quit
)
