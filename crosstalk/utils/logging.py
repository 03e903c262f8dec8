"""Logging setup for the command-line tool."""

from __future__ import annotations

import logging
import os
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "CROSSTALK_LOG_LEVEL"
DEFAULT_LEVEL = "WARNING"


def resolve_level(level: Union[str, int, None]) -> int:
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV) or DEFAULT_LEVEL
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if isinstance(resolved, int):
        return resolved
    raise ValueError(f"Unsupported log level: {level}")


def configure_logging(level: Union[str, int, None] = None, console: Optional[Console] = None) -> None:
    """Send log records to stderr through a Rich handler."""
    logging.basicConfig(
        level=resolve_level(level),
        format="%(message)s",
        handlers=[
            RichHandler(
                console=console or Console(stderr=True),
                rich_tracebacks=False,
                markup=False,
                show_path=False,
            )
        ],
        force=True,
    )
    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(max(logging.WARNING, logging.getLogger().level))
