"""Logging setup for dataplayground.

One handler set is shared by the package logger and the uvicorn loggers,
since both servers run with uvicorn's own logging config disabled.
"""

from __future__ import annotations

import logging
import sys

from dataplayground.config.settings import LoggingConfig

# Loggers that receive the configured handlers
LOGGER_NAMES = ("dataplayground", "uvicorn", "uvicorn.error", "uvicorn.access")

_HANDLER_MARK = "_dataplayground_handler"


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure the package and server loggers.

    Args:
        config: Logging configuration. If None, uses defaults
                (INFO level, stderr output).

    Safe to call more than once: handlers installed by an earlier call are
    replaced rather than duplicated.
    """
    if config is None:
        config = LoggingConfig()

    level = getattr(logging, config.level.upper(), logging.INFO)
    formatter = logging.Formatter(config.format)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file:
        handlers.append(logging.FileHandler(config.file))
    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARK, True)

    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        for old in [h for h in logger.handlers if getattr(h, _HANDLER_MARK, False)]:
            logger.removeHandler(old)
            old.close()
        # uvicorn.error/access propagate to "uvicorn"
        if name in ("uvicorn.error", "uvicorn.access"):
            continue
        for handler in handlers:
            logger.addHandler(handler)

    logging.getLogger("dataplayground").info("Logging initialized at %s level", config.level)
