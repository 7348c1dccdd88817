from __future__ import annotations

import logging
from typing import Union


LOGGER_NAME = "backlog_planner"

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Union[str, int] = logging.WARNING) -> logging.Logger:
    """Install a single stderr handler on the package logger.

    Safe to call more than once; the handler is replaced, not stacked.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"unknown log level: {level}")
        level = resolved

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for h in list(logger.handlers):
        if getattr(h, "_backlog_planner", False):
            logger.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler._backlog_planner = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return logger
