"""
Logging setup for the duetcode server.

`configure_logging` installs one stdout handler on the root logger, driven by
the `log_*` fields of `DuetSettings` (`DUETCODE_LOG_LEVEL`,
`DUETCODE_LOG_FORMAT`, `DUETCODE_QUIET_LOGGERS`). The handler is named so a
second call reconfigures it in place instead of stacking another one.
"""
from __future__ import annotations

import logging
import sys
from typing import Optional

from .config import DuetSettings

HANDLER_NAME = "duetcode"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _server_handler(root: logging.Logger) -> Optional[logging.Handler]:
    for handler in root.handlers:
        if handler.get_name() == HANDLER_NAME:
            return handler
    return None


def configure_logging(settings: Optional[DuetSettings] = None) -> int:
    """
    Points the root logger at stdout using the server's settings.

    Args:
        settings: Source of the level, format and quieted loggers; read from
                  the environment when omitted.

    Returns:
        The effective root log level.
    """
    settings = settings or DuetSettings()
    level = _resolve_level(settings.log_level)
    root = logging.getLogger()

    handler = _server_handler(root)
    if handler is None:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.set_name(HANDLER_NAME)
        root.addHandler(handler)
    handler.setFormatter(logging.Formatter(fmt=settings.log_format, datefmt=DATE_FORMAT))
    root.setLevel(level)

    for name in settings.quiet_loggers:
        logging.getLogger(name).setLevel(max(logging.WARNING, level))
    return level


__all__ = ["configure_logging"]
