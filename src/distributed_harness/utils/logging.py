"""Logging configuration and utilities."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, List

import structlog
from pythonjsonlogger import jsonlogger

# Libraries that narrate every connection at INFO.
QUIET_LOGGERS = ("paramiko", "paramiko.transport")


def _renderer(format_type: str) -> Any:
    if format_type == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def _formatter(format_type: str) -> logging.Formatter:
    if format_type == "json":
        return jsonlogger.JsonFormatter("%(asctime)s %(name)s %(levelname)s %(message)s")
    return logging.Formatter("%(message)s")


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    file_path: Path | None = None,
) -> None:
    """Setup structured logging for the application.

    Context bound with ``structlog.contextvars`` is merged into every event;
    the orchestrator binds ``node`` and ``operation`` inside each per-node
    task, so concurrent nodes stay distinguishable in one stream.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(format_type),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = _formatter(format_type)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if file_path:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(file_path))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=handlers,
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger."""
    return structlog.get_logger(name)
