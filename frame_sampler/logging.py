"""
Logging setup for frame_sampler.

Every module does:
    from frame_sampler.logging import get_logger
    logger = get_logger(__name__)

Handlers are attached once to the ``frame_sampler`` logger: console always,
a rotating file when LOG_FILE is set (or the CLI asks for one). Uncaught
exceptions are logged before the process exits.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "")
WORKER_ID = os.getenv("WORKER_ID", "main")  # Distinguishes parallel sampler processes in shared logs

ROOT_LOGGER_NAME = "frame_sampler"
LOG_FORMAT = "%(asctime)s | {worker} | %(levelname)s | %(name)s | %(message)s"

FILE_MAX_BYTES = 50 * 1024 * 1024
FILE_BACKUPS = 5

_configured = False


def _formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT.format(worker=WORKER_ID))


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _log_uncaught(exc_type, exc_value, exc_tb) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)
        return
    logging.getLogger(ROOT_LOGGER_NAME).critical(
        "Uncaught exception", exc_info=(exc_type, exc_value, exc_tb)
    )


def _configure() -> None:
    """Attach package handlers on first use."""
    global _configured
    if _configured:
        return
    _configured = True

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(_resolve_level(LOG_LEVEL))

    # sys.__stdout__ so rich/tqdm redirection of sys.stdout does not swallow logs
    console = logging.StreamHandler(sys.__stdout__)
    console.setLevel(logging.DEBUG)
    console.setFormatter(_formatter())
    package_logger.addHandler(console)

    if LOG_FILE:
        add_file_handler(Path(LOG_FILE))

    sys.excepthook = _log_uncaught


def add_file_handler(log_path: Path) -> logging.Handler:
    """
    Also write package logs to a rotating file.

    Calling twice with the same path returns the existing handler.
    """
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for existing in package_logger.handlers:
        if isinstance(existing, logging.handlers.RotatingFileHandler) \
                and Path(existing.baseFilename) == log_path.resolve():
            return existing

    handler = logging.handlers.RotatingFileHandler(log_path, maxBytes=FILE_MAX_BYTES, backupCount=FILE_BACKUPS)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(_formatter())
    package_logger.addHandler(handler)
    return handler


def set_level(level: str) -> None:
    """Change the package log level at runtime (CLI --verbose, config)."""
    _configure()
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(_resolve_level(level))


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger under the ``frame_sampler`` namespace.

    Args:
        name: Logger name (typically __name__)
    """
    _configure()

    if name is None:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


logger = get_logger()
