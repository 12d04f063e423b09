"""Logging setup shared by the schedule ingestion command-line tools."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(levelname)s: %(message)s"


def setup_logging(level: int | str = logging.INFO) -> None:
    """Configure root logging to write plain messages to stdout.

    Args:
        level: Numeric level or a level name such as ``"DEBUG"``.

    Raises:
        ValueError: If ``level`` is a name the logging module does not know.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
