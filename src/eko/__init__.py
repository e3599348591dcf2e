"""Top-level package for eko, a modal terminal chat client."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .app import EkoApp
    from .chat import OllamaBackend
    from .config import Config, load_config, save_config
    from .exceptions import (
        ConfigValidationError,
        EkoError,
        ImageGenerationError,
        OllamaConnectionError,
        OllamaModelNotFoundError,
        OllamaStreamingError,
    )
    from .session import Session, SessionView

__all__ = [
    "Config",
    "ConfigValidationError",
    "EkoApp",
    "EkoError",
    "ImageGenerationError",
    "OllamaBackend",
    "OllamaConnectionError",
    "OllamaModelNotFoundError",
    "OllamaStreamingError",
    "Session",
    "SessionView",
    "load_config",
    "save_config",
]

_EXCEPTIONS = {
    "ConfigValidationError",
    "EkoError",
    "ImageGenerationError",
    "OllamaConnectionError",
    "OllamaModelNotFoundError",
    "OllamaStreamingError",
}


def __getattr__(name: str) -> Any:
    """Lazily import symbols so the core session does not pull in the UI stack."""
    if name in _EXCEPTIONS:
        from . import exceptions

        return getattr(exceptions, name)
    if name in {"Session", "SessionView"}:
        from . import session

        return getattr(session, name)
    if name in {"Config", "load_config", "save_config"}:
        from . import config

        return getattr(config, name)
    if name == "OllamaBackend":
        from .chat import OllamaBackend

        return OllamaBackend
    if name == "EkoApp":
        from .app import EkoApp

        return EkoApp
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
