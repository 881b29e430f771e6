"""Logging helpers for the analytics engine.

Engine modules only ever call ``get_logger(__name__)``. The dashboard (or a
script) calls ``configure_logging()`` once to get output on stderr.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

LOGGER_NAMESPACES = ("filters", "trends", "aggregation", "scenario_state", "main")

DEFAULT_FMT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    level: Optional[Union[str, int]] = None,
    *,
    fmt: Optional[str] = None,
    datefmt: Optional[str] = None,
    force: bool = False,
) -> None:
    """Attach a stderr handler to the project loggers (never the root logger).

    ``level`` defaults to the ``AZ_LOG_LEVEL`` environment variable, or INFO.
    Calling this twice is a no-op unless ``force`` is set.
    """
    if level is None:
        level = os.environ.get("AZ_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    formatter = logging.Formatter(fmt=fmt or DEFAULT_FMT, datefmt=datefmt or DEFAULT_DATEFMT)

    for namespace in LOGGER_NAMESPACES:
        logger = logging.getLogger(namespace)
        logger.setLevel(level)

        if force:
            for h in logger.handlers[:]:
                h.close()
                logger.removeHandler(h)
        elif any(
            isinstance(h, logging.StreamHandler) and h.stream is sys.stderr
            for h in logger.handlers
        ):
            continue

        console = logging.StreamHandler(sys.stderr)
        console.setLevel(level)
        console.setFormatter(formatter)
        logger.addHandler(console)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "filters")
