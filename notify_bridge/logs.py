"""
Structured logging setup.

Features:
- structlog routed through stdlib logging
- Console: human-readable key/value lines
- File: JSON entries with rotation (5MB max, 3 backups)
"""

import logging
import logging.handlers
import sys
from pathlib import Path

import structlog

__all__ = ["configure_logging", "set_debug"]

MAX_BYTES = 5 * 1024 * 1024  # 5MB
BACKUP_COUNT = 3

ROOT_LOGGER = "notify_bridge"

_SHARED_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def configure_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure structlog and the package's stdlib logger.

    Args:
        level: Log level name for the package logger
        log_file: Optional JSON log file (rotated); skipped if not writable
    """
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_SHARED_PROCESSORS,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    package_logger = logging.getLogger(ROOT_LOGGER)
    package_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    package_logger.propagate = False

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    ))
    package_logger.addHandler(console)

    if log_file is None:
        return

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            str(log_file),
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
        )
    except (OSError, PermissionError):
        return  # Skip file logging if not writable

    file_handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
    ))
    package_logger.addHandler(file_handler)


def set_debug(name: str, enabled: bool) -> None:
    """Toggle DEBUG output for one subsystem logger (e.g. the listener).

    Disabling hands the level back to the package logger.
    """
    logging.getLogger(name).setLevel(logging.DEBUG if enabled else logging.NOTSET)
