"""
Structured logging for siterules.

Components log through structlog on top of the stdlib root logger. Events are
key/value pairs (``partition=...``, ``duration_ms=...``) rendered as one JSON
object per line, or colored console output for development.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

import structlog
from structlog.contextvars import bound_contextvars
from structlog.types import Processor

from siterules.utils.config import get_project_root, get_settings

# Scoped context: every event logged inside the block carries the given keys,
# and previous values of the same keys are restored on exit.
LogContext = bound_contextvars


def _default_log_file() -> Path | None:
    general = get_settings().general
    if not general.log_to_file:
        return None
    log_dir = get_project_root() / general.logs_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"siterules_{datetime.now():%Y%m%d}.log"


def configure_logging(
    log_level: str | None = None,
    log_file: str | Path | None = None,
    json_format: bool | None = None,
) -> None:
    """Route siterules events to stderr and, optionally, a file.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR. Defaults to ``general.log_level``.
        log_file: Extra file destination. Defaults to a dated file under
            ``general.logs_dir`` when ``general.log_to_file`` is set.
        json_format: JSON lines (True) or console output (False). Defaults
            to ``general.json_logs``.
    """
    general = get_settings().general
    level = (log_level or general.log_level).upper()
    if json_format is None:
        json_format = general.json_logs
    if log_file is None:
        log_file = _default_log_file()

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level, logging.INFO),
        handlers=handlers,
        force=True,
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_format:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for a siterules module (pass ``__name__``)."""
    return structlog.get_logger(name)
