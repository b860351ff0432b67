"""logging configuration for canvas copilot.

verbosity levels map to the stdlib levels; output goes to a file when
--log-file or CANVAS_COPILOT_LOG is set, otherwise to stderr.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

logger = logging.getLogger("canvas_copilot")

LOG_ENV_VAR = "CANVAS_COPILOT_LOG"

# --verbose=N -> level (0=errors only, 3=debug; out of range values clamp)
_VERBOSITY_MAP = {
    0: logging.ERROR,
    1: logging.WARNING,
    2: logging.INFO,
    3: logging.DEBUG,
}

_initialized = False


def level_for(verbose: int) -> int:
    return _VERBOSITY_MAP[min(max(verbose, 0), 3)]


def setup_logging(verbose: int = 2, log_file: Optional[str] = None) -> None:
    """configure the package logger. later calls are no-ops."""
    global _initialized
    if _initialized:
        return
    _initialized = True

    level = level_for(verbose)
    logger.setLevel(level)
    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")

    log_path = log_file or os.environ.get(LOG_ENV_VAR)
    handler: logging.Handler
    if log_path:
        handler = logging.FileHandler(os.path.expanduser(log_path), mode="a", encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """child of the package logger, e.g. get_logger("api")."""
    if name:
        return logger.getChild(name)
    return logger
