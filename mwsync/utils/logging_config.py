"""Logging setup for sync passes.

mwsync logs through structlog; requests and urllib3 log through the standard
library. Both are rendered by the same ``ProcessorFormatter`` so a pass reads
as one stream of key/value events, and anything bound with
``structlog.contextvars`` (the coordinator binds ``sync_pass``) appears on
every line emitted while it is bound.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any

import structlog

from mwsync.models.config import LoggingConfig

# Chatty transport loggers, quieted unless running at DEBUG.
NOISY_LOGGERS = ("urllib3", "requests")


def _shared_processors() -> list[Any]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ],
        ),
    ]


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors(),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    log_file: str | None = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Configure structured logging for the sync process.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: JSON on stdout if True (cron/daemon), console renderer otherwise
        log_file: Optional rotating log file; always written as JSON
        max_bytes: Size at which the log file is rotated
        backup_count: Number of rotated files kept

    Example:
        >>> configure_logging(log_level="DEBUG", json_logs=False)
        >>> log = structlog.stdlib.get_logger()
        >>> log.info("sync_pass_started", kind="scheduled")
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    if json_logs:
        stdout_renderer: Any = structlog.processors.JSONRenderer()
    else:
        stdout_renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(_formatter(stdout_renderer))
    handlers: list[logging.Handler] = [stdout_handler]

    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
        handlers.append(file_handler)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(
            logging.NOTSET if numeric_level <= logging.DEBUG else logging.WARNING
        )

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging_from_config(config: LoggingConfig) -> None:
    configure_logging(
        log_level=config.log_level,
        json_logs=config.json_logs,
        log_file=config.log_file,
        max_bytes=config.max_bytes,
        backup_count=config.backup_count,
    )
