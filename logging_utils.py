"""Centralized logging configuration for the club portal API."""

from __future__ import annotations

import logging
from logging import Logger
from typing import Iterable, Union


DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_HANDLER_MARKER = "_club_portal_handler"


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    handlers: Iterable[logging.Handler] | None = None,
) -> Logger:
    """Configure the root logger once; repeated calls only adjust the level."""

    logger = logging.getLogger()
    logger.setLevel(level)

    if any(getattr(handler, _HANDLER_MARKER, False) for handler in logger.handlers):
        return logger

    if handlers is None:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
        handlers = [stream_handler]

    for handler in handlers:
        setattr(handler, _HANDLER_MARKER, True)
        logger.addHandler(handler)

    return logger


__all__ = ["configure_logging", "DEFAULT_LOG_FORMAT"]
