"""Logging setup for the CLI and library loggers."""

from __future__ import annotations

import logging
from typing import Optional

from ppd.config import Settings


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# HTTP client loggers that emit one line per provider or proxy request.
HTTP_LOGGERS = ("httpx", "httpcore")


def configure_logging(settings: Settings) -> None:
    """Configure the root logger from ``settings``.

    HTTP client loggers are capped at ``settings.http_log_level``.
    """
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
    http_level = settings.http_log_level.upper()
    for name in HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)
    logging.getLogger(__name__).debug(
        "logging.configured level=%s http_level=%s env=%s",
        settings.log_level,
        http_level,
        settings.run_env,
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name)
