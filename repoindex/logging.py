"""Logging setup for the scanner, its worker threads and parser backends."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Union

_LOGGER_NAME = "repoindex"

CONSOLE_FORMAT = "[repoindex] %(levelname)s %(message)s"
# Scans log from worker and committer threads; verbose output names them.
VERBOSE_CONSOLE_FORMAT = "[repoindex] %(levelname)s %(name)s (%(threadName)s): %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(threadName)s: %(message)s"

LevelLike = Union[int, str]


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the repoindex hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def resolve_level(level: LevelLike) -> int:
    """Turn ``"debug"``, ``"WARNING"`` or ``10`` into a logging level number."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def configure_logging(
    *,
    verbose: bool = False,
    level: LevelLike | None = None,
    log_file: Path | None = None,
    component_levels: Mapping[str, LevelLike] | None = None,
) -> logging.Logger:
    """Configure the repoindex logger with console output and optional file sink.

    ``level`` overrides the level implied by ``verbose``. ``component_levels``
    tunes sub-loggers, e.g. ``{"lsp": "WARNING"}`` to keep language server
    chatter out of a verbose scan log.
    """
    effective = resolve_level(level) if level is not None else (logging.DEBUG if verbose else logging.INFO)
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(effective)
    logger.propagate = False

    # Reset handlers so repeated configuration does not duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(effective)
    console_format = VERBOSE_CONSOLE_FORMAT if effective <= logging.DEBUG else CONSOLE_FORMAT
    stream_handler.setFormatter(logging.Formatter(console_format))
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(effective)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    for component, component_level in (component_levels or {}).items():
        get_logger(component).setLevel(resolve_level(component_level))

    return logger


__all__ = [
    "CONSOLE_FORMAT",
    "FILE_FORMAT",
    "VERBOSE_CONSOLE_FORMAT",
    "configure_logging",
    "get_logger",
    "resolve_level",
]
