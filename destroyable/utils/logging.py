import atexit
from datetime import (
    datetime,
)
import logging
import logging.handlers
import os
from pathlib import (
    Path,
)
import queue
import sys
import tempfile
from typing import (
    Any,
)

ROOT_LOGGER_NAME = "destroyable"

# Create a log queue
log_queue: "queue.Queue[Any]" = queue.Queue()

# Store the current listener to stop it on exit
_current_listener: logging.handlers.QueueListener | None = None

# Default format for log messages
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _parse_debug_modules(debug_str: str) -> dict[str, int]:
    """
    Parse the DESTROYABLE_DEBUG environment variable into per-module levels.

    Format examples:
    - "DEBUG"  # All modules at DEBUG level
    - "destroyable.registry:DEBUG"  # Only the registry at DEBUG
    - "registry:DEBUG"  # Same as above, destroyable prefix is optional
    - "destroyer:DEBUG,transport:INFO"  # Multiple modules
    """
    module_levels: dict[str, int] = {}

    if not debug_str or debug_str.isspace():
        return module_levels

    # A plain level without any colons applies to all modules
    if ":" not in debug_str and debug_str.upper() in logging._nameToLevel:
        return {"": getattr(logging, debug_str.upper())}

    for part in debug_str.split(","):
        if ":" not in part:
            continue

        module, level = part.rsplit(":", 1)
        level = level.strip().upper()

        if level not in logging._nameToLevel:
            continue

        module = module.strip()
        if module.startswith(f"{ROOT_LOGGER_NAME}."):
            module = module[len(ROOT_LOGGER_NAME) + 1 :]
        module = module.replace("/", ".").strip(".")

        module_levels[module] = getattr(logging, level)

    return module_levels


def _disable_logging() -> None:
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.handlers.clear()
    root_logger.setLevel(logging.WARNING)
    root_logger.propagate = False


def setup_logging() -> None:
    """
    Set up logging configuration based on environment variables.

    Environment Variables:
        DESTROYABLE_DEBUG
            Controls logging levels. Examples:
            - "DEBUG" (all modules at DEBUG level)
            - "destroyable.registry:DEBUG" (only the registry at DEBUG)
            - "registry:DEBUG" (same as above, destroyable prefix optional)
            - "destroyer:DEBUG,transport:INFO" (multiple modules)

        DESTROYABLE_DEBUG_FILE
            If set, the file path for log output. Otherwise logs go to a
            timestamped file in the system's temp directory. Logs are written
            to stderr as well in both cases.
    """
    global _current_listener

    if _current_listener is not None:
        _current_listener.stop()
        _current_listener = None

    module_levels = _parse_debug_modules(os.environ.get("DESTROYABLE_DEBUG", ""))

    if not module_levels:
        _disable_logging()
        return

    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)

    handlers: list[logging.StreamHandler[Any] | logging.FileHandler] = []

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    log_file = os.environ.get("DESTROYABLE_DEBUG_FILE")

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
    else:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        unique_id = os.urandom(4).hex()
        log_path = Path(tempfile.gettempdir()) / (
            f"destroyable_{timestamp}_{unique_id}.log"
        )
        print(f"Logging to: {log_path}", file=sys.stderr)

    file_handler = logging.FileHandler(log_path, mode="w")
    file_handler.setFormatter(formatter)
    handlers.append(file_handler)

    queue_handler = logging.handlers.QueueHandler(log_queue)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.handlers.clear()
    root_logger.addHandler(queue_handler)
    root_logger.propagate = False
    # Module-specific configuration defaults everything else to INFO
    root_logger.setLevel(module_levels.get("", logging.INFO))

    for module, level in module_levels.items():
        if module:
            logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{module}")
            logger.handlers.clear()
            logger.addHandler(queue_handler)
            logger.setLevel(level)
            logger.propagate = False

    _current_listener = logging.handlers.QueueListener(
        log_queue, *handlers, respect_handler_level=True
    )
    _current_listener.start()


@atexit.register
def cleanup_logging() -> None:
    """Clean up logging resources on exit."""
    global _current_listener
    if _current_listener is not None:
        _current_listener.stop()
        _current_listener = None
