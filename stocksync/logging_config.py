"""
logging_config.py — Centralized Logging Configuration for StockSync

Sets up Loguru as the single logging backend. Intercepts Python's stdlib
logging module so every logging.getLogger("stocksync.*") call in the
services routes through Loguru.

Business Rules:
- All logs go through Loguru (no print(), no stray stdlib handlers)
- JSON lines in production so the log shipper can parse run summaries
- Colorized human format in development
- LOG_LEVEL env var controls verbosity (default INFO)

Called by: stocksync/main.py (lifespan startup)
Depends on: APP_URL / LOG_LEVEL environment variables
"""

import logging
import os
import sys

from loguru import logger

_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine")


def setup_logging() -> None:
    """Configure Loguru and intercept stdlib logging.

    Safe to call more than once; every call replaces the previous sinks.
    """
    logger.remove()

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    app_url = os.getenv("APP_URL", "")
    is_production = app_url.startswith("https://") and "localhost" not in app_url

    if is_production:
        logger.add(
            sys.stdout,
            level=log_level,
            format="{message}",
            serialize=True,
        )
    else:
        logger.add(
            sys.stdout,
            level=log_level,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "{message}"
            ),
            colorize=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info("Logging configured", level=log_level, production=is_production)


class InterceptHandler(logging.Handler):
    """Route stdlib logging records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip frames from stdlib logging internals so Loguru reports the caller
        frame, depth = logging.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )
