import logging
import logging.handlers
import os
from pathlib import (
    Path,
)
import queue
import tempfile

import pytest

from destroyable.utils import logging as destroyable_logging
from destroyable.utils.logging import (
    _parse_debug_modules,
    cleanup_logging,
    log_queue,
    setup_logging,
)


def _reset_logging():
    """Reset all logging state."""
    cleanup_logging()

    for name, logger in list(logging.Logger.manager.loggerDict.items()):
        if name.startswith("destroyable") and isinstance(logger, logging.Logger):
            logger.handlers.clear()
            logger.setLevel(logging.NOTSET)
            logger.propagate = True

    root = logging.getLogger("destroyable")
    root.propagate = False
    root.setLevel(logging.WARNING)

    while not log_queue.empty():
        try:
            log_queue.get_nowait()
        except queue.Empty:
            break


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove relevant environment variables before each test."""
    for var in ["DESTROYABLE_DEBUG", "DESTROYABLE_DEBUG_FILE"]:
        monkeypatch.delenv(var, raising=False)

    _reset_logging()
    yield
    _reset_logging()


def test_logging_disabled():
    setup_logging()
    logger = logging.getLogger("destroyable")
    assert logger.level == logging.WARNING
    assert not logger.handlers


def test_logging_with_debug_env(monkeypatch, tmp_path):
    monkeypatch.setenv("DESTROYABLE_DEBUG", "DEBUG")
    monkeypatch.setenv("DESTROYABLE_DEBUG_FILE", str(tmp_path / "debug.log"))
    setup_logging()
    logger = logging.getLogger("destroyable")

    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0], logging.handlers.QueueHandler)


def test_module_specific_logging(monkeypatch, tmp_path):
    monkeypatch.setenv(
        "DESTROYABLE_DEBUG", "destroyable.destroyer:DEBUG,transport:INFO"
    )
    monkeypatch.setenv("DESTROYABLE_DEBUG_FILE", str(tmp_path / "debug.log"))
    setup_logging()

    assert logging.getLogger("destroyable").level == logging.INFO
    assert logging.getLogger("destroyable.destroyer").level == logging.DEBUG
    assert logging.getLogger("destroyable.transport").level == logging.INFO

    # Unspecified modules inherit from the package logger
    other_logger = logging.getLogger("destroyable.registry")
    assert other_logger.getEffectiveLevel() == logging.INFO


@pytest.mark.parametrize(
    "value, expected",
    [
        ("", {}),
        ("   ", {}),
        ("info", {"": logging.INFO}),
        ("registry:DEBUG", {"registry": logging.DEBUG}),
        ("destroyable.registry:DEBUG", {"registry": logging.DEBUG}),
        ("transport/tcp:WARNING", {"transport.tcp": logging.WARNING}),
        ("registry:LOUD,destroyer", {}),
    ],
)
def test_parse_debug_modules(value, expected):
    assert _parse_debug_modules(value) == expected


def test_custom_log_file(monkeypatch):
    with tempfile.TemporaryDirectory() as temp_dir:
        log_file = Path(temp_dir) / "nested" / "test.log"
        monkeypatch.setenv("DESTROYABLE_DEBUG", "INFO")
        monkeypatch.setenv("DESTROYABLE_DEBUG_FILE", str(log_file))

        setup_logging()

        logging.getLogger("destroyable").info("Test message")

        # Stopping the listener flushes the queue
        cleanup_logging()

        assert log_file.exists()
        assert "Test message" in log_file.read_text()


def test_default_log_file(monkeypatch, capsys):
    monkeypatch.setenv("DESTROYABLE_DEBUG", "INFO")

    setup_logging()
    logging.getLogger("destroyable").info("Default file message")
    cleanup_logging()

    printed = capsys.readouterr().err
    assert "Logging to: " in printed
    log_path = Path(printed.split("Logging to: ", 1)[1].splitlines()[0])
    try:
        assert log_path.parent == Path(tempfile.gettempdir())
        assert log_path.name.startswith("destroyable_")
        assert "Default file message" in log_path.read_text()
    finally:
        log_path.unlink(missing_ok=True)


def test_setup_twice_replaces_listener(monkeypatch, tmp_path):
    monkeypatch.setenv("DESTROYABLE_DEBUG", "INFO")
    monkeypatch.setenv("DESTROYABLE_DEBUG_FILE", str(tmp_path / "debug.log"))

    setup_logging()
    first = destroyable_logging._current_listener
    setup_logging()

    assert destroyable_logging._current_listener is not None
    assert destroyable_logging._current_listener is not first
