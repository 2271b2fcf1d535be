"""loguru sinks for the command line, with stdlib records routed into them.

Library modules never call this; only entry points such as
:func:`imcdatasets.cli.main` configure sinks.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger as _logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Redirect stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - thin wrapper
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        _logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(
    *,
    level: str = "INFO",
    console: bool = True,
    file_path: Optional[Union[str, Path]] = None,
    rotation: Optional[Union[str, int]] = None,
    retention: Optional[Union[str, int]] = None,
    serialize: bool = False,
) -> None:
    """Configure loguru sinks for download and cache activity.

    - Adds a console sink (stderr) and an optional file sink
    - Bridges stdlib logging (all ``imcdatasets.*`` modules) to loguru
    """
    lvl = level.upper()
    _logger.level(lvl)  # raises ValueError for unknown level names

    _logger.remove()
    if console:
        _logger.add(
            sys.stderr,
            level=lvl,
            format=CONSOLE_FORMAT,
            backtrace=False,
            diagnose=False,
            serialize=serialize,
        )
    if file_path:
        _logger.add(
            str(file_path),
            level=lvl,
            rotation=rotation,
            retention=retention,
            backtrace=False,
            diagnose=False,
            serialize=serialize,
        )
    _bridge_stdlib(level=lvl)


def _bridge_stdlib(level: str = "INFO") -> None:
    """Route stdlib logging into loguru."""
    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(getattr(logging, level, logging.INFO))
    for name in list(logging.Logger.manager.loggerDict.keys()):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True

