"""Structured JSON logging to stdout, with errors also kept on disk."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys

import structlog

from auctionbot.config.settings import MonitoringConfig

# uvicorn's access log would echo the ?password= query string.
QUIET_LOGGERS = ("uvicorn.access", "redis")


def _error_file_handler(monitoring: MonitoringConfig) -> RotatingFileHandler:
    log_dir = Path(monitoring.logs_path)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        log_dir / "errors.log",
        maxBytes=monitoring.error_log_max_bytes,
        backupCount=monitoring.error_log_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(logging.ERROR)
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def configure_logging(monitoring: MonitoringConfig | None = None) -> None:
    """Route structlog through the stdlib root logger.

    Every record goes to stdout. With `logs_path` set, ERROR and above are
    also written to a rotating `errors.log` there.
    """
    monitoring = monitoring or MonitoringConfig()
    level = getattr(logging, monitoring.log_level, logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)
    if monitoring.logs_path:
        logging.getLogger().addHandler(_error_file_handler(monitoring))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )
