"""Configuration loading, validation, and persistence for eko."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_validator

from .exceptions import ConfigValidationError

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "eko"
CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULT_MODEL = "dolphin-phi"
DEFAULT_URL = "http://localhost:11434"
DEFAULT_COMFYUI_URL = "http://localhost:8188"
DEFAULT_WORKFLOW_PATH = "~/lab/model/workflow/default.json"
VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def normalize_url(value: str) -> str:
    """Prepend ``http://`` when ``value`` has no scheme."""
    normalized = value.strip().rstrip("/")
    if normalized and "://" not in normalized:
        normalized = f"http://{normalized}"
    return normalized


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/eko/eko.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("log_file_path must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("log_file_path must not be empty.")
        return normalized


class Config(BaseModel):
    """Root configuration stored in ``config.json``."""

    model: str = DEFAULT_MODEL
    url: str = DEFAULT_URL
    comfyui_url: str = DEFAULT_COMFYUI_URL
    workflow_path: str = DEFAULT_WORKFLOW_PATH
    timeout: int = Field(default=120, ge=1, le=3600)
    stream_queue_size: int = Field(default=100, ge=1, le=100_000)
    status_ttl_seconds: float = Field(default=3.0, gt=0, le=3600)
    tldr_threshold: int = Field(default=100, ge=1, le=1_000_000)
    logging: LoggingConfig = LoggingConfig()

    @field_validator("model", "workflow_path", mode="before")
    @classmethod
    def _default_when_empty(cls, value: Any, info: ValidationInfo) -> str:
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise ValueError("Expected a string value.")
        normalized = value.strip()
        if not normalized:
            return cls.model_fields[info.field_name].default
        return normalized

    @field_validator("url", "comfyui_url", mode="before")
    @classmethod
    def _validate_url(cls, value: Any, info: ValidationInfo) -> str:
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise ValueError("URL must be a string.")
        normalized = normalize_url(value)
        if not normalized:
            return cls.model_fields[info.field_name].default
        return normalized

    @property
    def resolved_workflow_path(self) -> Path:
        return Path(self.workflow_path).expanduser()


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _read_raw(target_path: Path) -> dict[str, Any]:
    if not target_path.exists():
        return {}
    try:
        raw = json.loads(target_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigValidationError(
            f"Unable to read config at {target_path}: {exc}"
        ) from exc
    if not isinstance(raw, dict):
        raise ConfigValidationError(f"Config at {target_path} must be a JSON object.")
    return raw


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from JSON and validate it.

    A missing file yields defaults. An unreadable or invalid file raises
    :class:`ConfigValidationError`; callers decide whether to fall back.
    """
    target_path = config_path or CONFIG_PATH
    raw_data = _read_raw(target_path)
    try:
        config = Config.model_validate(raw_data)
    except ValidationError as exc:
        raise ConfigValidationError(
            f"Invalid configuration in {target_path}: {exc}"
        ) from exc
    LOGGER.debug(
        "config.loaded",
        extra={
            "event": "config.loaded",
            "path": str(target_path),
            "model": config.model,
        },
    )
    return config


def save_config(model_name: str, config_path: Path | None = None) -> Path:
    """Persist ``model_name`` as the default model.

    The file is rewritten with every other key left as it was.
    """
    normalized = model_name.strip()
    if not normalized:
        raise ConfigValidationError("Model name must not be empty.")
    target_path = config_path or CONFIG_PATH
    raw_data = _read_raw(target_path)
    raw_data["model"] = normalized
    ensure_config_dir(target_path.parent)
    tmp_path = target_path.with_name(f"{target_path.name}.tmp")
    tmp_path.write_text(
        json.dumps(raw_data, indent=2, ensure_ascii=False), encoding="utf-8"
    )
    os.replace(tmp_path, target_path)
    LOGGER.info(
        "config.saved",
        extra={"event": "config.saved", "path": str(target_path), "model": normalized},
    )
    return target_path
