"""Domain exception hierarchy for the eko chat client."""

from __future__ import annotations


class EkoError(RuntimeError):
    """Base class for all domain-level errors."""


class OllamaConnectionError(EkoError):
    """Raised when the Ollama host cannot be reached."""


class OllamaModelNotFoundError(EkoError):
    """Raised when the requested model is unavailable."""


class OllamaStreamingError(EkoError):
    """Raised when streaming fails for non-connectivity reasons."""


class ImageGenerationError(EkoError):
    """Raised when the ComfyUI workflow cannot be queued or completed."""


class ConfigValidationError(EkoError):
    """Raised when configuration cannot be read or validated."""
