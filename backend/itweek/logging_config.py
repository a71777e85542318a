"""JSON structured logging for the API and the Celery worker."""
from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from itweek.config import settings

_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "httpx": logging.WARNING,
    "celery": logging.INFO,
}


def setup_logging(level: str | None = None) -> None:
    """One JSON line per record on stdout, tagged with service and environment.

    Safe to call more than once: existing root handlers are replaced.
    """
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
        static_fields={"service": "itweek", "env": settings.APP_ENV},
        json_ensure_ascii=False,
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel((level or settings.APP_LOG_LEVEL).upper())

    for name, logger_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(logger_level)
    # SQL echo is only useful while developing locally.
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.APP_ENV == "development" else logging.WARNING
    )
