"""CLI entrypoint for eko."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from importlib import metadata
import logging

from .app import EkoApp
from .config import Config, ensure_config_dir, load_config
from .exceptions import ConfigValidationError
from .logging_utils import configure_logging

LOGGER = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eko",
        description="eko - modal terminal chat for local Ollama models",
    )
    parser.add_argument(
        "-i",
        "--image",
        action="store_true",
        help="Send prompts to ComfyUI and generate images instead of text",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "prompt",
        nargs="*",
        help="Optional first prompt, sent as soon as the app starts",
    )
    return parser


def _startup_config() -> Config:
    try:
        return load_config()
    except ConfigValidationError as exc:
        LOGGER.warning(
            "config.invalid",
            extra={"event": "config.invalid", "error": str(exc)},
        )
        return Config()


def main(argv: Sequence[str] | None = None) -> None:
    """Handle CLI flags, bootstrap logging, and run the TUI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("eko")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"eko {version}")
        return

    ensure_config_dir()
    config = _startup_config()
    configure_logging(config.logging.model_dump())
    initial_prompt = " ".join(args.prompt).strip() or None
    app = EkoApp(config, image_mode=args.image, initial_prompt=initial_prompt)
    app.run()


if __name__ == "__main__":
    main()
