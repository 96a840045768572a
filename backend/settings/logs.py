from __future__ import annotations

import logging
import os

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def log_level() -> int:
    name = (os.getenv("RENTMAP_LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging() -> None:
    """
    Root logging setup for the app process. Safe to call more than once.
    """
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=log_level(), format=_FORMAT)
    else:
        root.setLevel(log_level())
