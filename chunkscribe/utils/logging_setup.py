"""Console logging for the ``chunkscribe`` logger tree."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TextIO

LOGGER_NAME = "chunkscribe"
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: int | str = logging.INFO, *, stream: TextIO | None = None, log_file: Path | None = None) -> logging.Logger:
    """Attach one stream handler (and optionally a file handler) to the package logger.

    Calling it again replaces the handlers it installed earlier.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"unknown log level: {level}")
        level = resolved

    root = logging.getLogger(LOGGER_NAME)
    for handler in list(root.handlers):
        if getattr(handler, "_chunkscribe_owned", False):
            root.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._chunkscribe_owned = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    root.setLevel(level)
    root.propagate = False
    return root


__all__ = ["LOGGER_NAME", "configure_logging"]
