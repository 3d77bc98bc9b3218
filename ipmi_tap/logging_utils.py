from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from colorlog import ColoredFormatter

TRACE_LEVEL = 5

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def configure_logging(level: int, log_file: str | None = None) -> None:
    logging.addLevelName(TRACE_LEVEL, "TRACE")
    handlers: list[logging.Handler] = []
    console = logging.StreamHandler()
    console.setFormatter(
        ColoredFormatter(
            "%(log_color)s" + LOG_FORMAT,
            log_colors={
                "TRACE": "cyan",
                "DEBUG": "blue",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )
    handlers.append(console)
    if log_file:
        file_handler = RotatingFileHandler(
            log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)
    logging.basicConfig(level=level, handlers=handlers, force=True)


def resolve_log_level(verbosity: int, fallback: str) -> int:
    if verbosity >= 2:
        return TRACE_LEVEL
    if verbosity == 1:
        return logging.DEBUG
    if fallback.upper() == "TRACE":
        return TRACE_LEVEL
    return logging._nameToLevel.get(fallback.upper(), logging.INFO)


def mask_command(command: list[str]) -> str:
    """Render a command line for logs with the ``-p`` password hidden."""
    masked: list[str] = []
    hide_next = False
    for part in command:
        if hide_next:
            masked.append("****")
            hide_next = False
            continue
        masked.append(part)
        if part == "-p":
            hide_next = True
    return " ".join(masked)
