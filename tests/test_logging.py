from __future__ import annotations

import logging
import threading
from pathlib import Path

import pytest

from repoindex.logging import (
    CONSOLE_FORMAT,
    VERBOSE_CONSOLE_FORMAT,
    configure_logging,
    get_logger,
    resolve_level,
)


@pytest.fixture
def reset_repoindex_logger():
    yield
    logger = logging.getLogger("repoindex")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    get_logger("lsp").setLevel(logging.NOTSET)


def _console(logger: logging.Logger) -> logging.Handler:
    return next(handler for handler in logger.handlers if not isinstance(handler, logging.FileHandler))


def test_get_logger_uses_package_hierarchy() -> None:
    assert get_logger("scanner").name == "repoindex.scanner"
    assert get_logger().name == "repoindex"


def test_resolve_level_accepts_names_and_numbers() -> None:
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level(" Warning ") == logging.WARNING
    assert resolve_level(logging.ERROR) == logging.ERROR
    with pytest.raises(ValueError):
        resolve_level("chatty")


@pytest.mark.usefixtures("reset_repoindex_logger")
def test_configure_logging_resets_handlers_and_writes_file(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "repoindex.log"
    configure_logging(verbose=True)
    logger = configure_logging(verbose=True, log_file=log_file)

    worker = threading.Thread(
        target=lambda: get_logger("scanner").debug("worker finished"), name="repoindex-worker_0"
    )
    worker.start()
    worker.join()
    for handler in logger.handlers:
        handler.flush()

    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 2
    assert _console(logger).formatter._fmt == VERBOSE_CONSOLE_FORMAT
    assert "repoindex.scanner repoindex-worker_0: worker finished" in log_file.read_text(encoding="utf-8")


@pytest.mark.usefixtures("reset_repoindex_logger")
def test_level_override_and_component_levels() -> None:
    logger = configure_logging(verbose=True, level="warning", component_levels={"lsp": "error"})

    assert logger.level == logging.WARNING
    assert _console(logger).formatter._fmt == CONSOLE_FORMAT
    assert get_logger("lsp").level == logging.ERROR
    assert not get_logger("lsp.client").isEnabledFor(logging.WARNING)
    assert get_logger("scanner").isEnabledFor(logging.WARNING)
