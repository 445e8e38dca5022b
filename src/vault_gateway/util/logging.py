"""Logging setup for the Vault CA gateway.

Call ``setup_logging()`` once at startup (the FastAPI lifespan does) to
configure the Python logging subsystem with a consistent format and level.
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager


def setup_logging(
    level: int | str = logging.INFO,
    fmt: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt: str = "%Y-%m-%dT%H:%M:%S",
) -> None:
    """Configure the root logger with the given level and format.

    Parameters
    ----------
    level:
        Logging level (default ``INFO``).  Accepts both integer constants
        (``logging.DEBUG``) and string names (``"DEBUG"``).
    fmt:
        Format string for log messages.
    datefmt:
        Date/time format string.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=fmt,
        datefmt=datefmt,
        stream=sys.stdout,
        force=True,
    )

    # Quieten noisy third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


@contextmanager
def trace_span(logger: logging.Logger, operation: str, **fields: object) -> Iterator[None]:
    """Log entry, exit and duration of *operation* at DEBUG level.

    Failures are logged with the elapsed time and re-raised unchanged.
    """
    context = " ".join(f"{key}={value}" for key, value in fields.items())
    logger.debug("%s: start %s", operation, context)
    started = time.monotonic()
    try:
        yield
    except BaseException as exc:
        logger.debug(
            "%s: failed after %.3fs (%s)",
            operation,
            time.monotonic() - started,
            type(exc).__name__,
        )
        raise
    logger.debug("%s: done in %.3fs", operation, time.monotonic() - started)
