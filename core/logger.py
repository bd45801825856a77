# =============================================================================
# core/logger.py — Centralized Logging Utility
#
# Every module logger is a child of one "rehab" logger that owns the two
# handlers (console at INFO, dated file at DEBUG), so the log file is opened
# once per process and --debug only has one console handler to adjust.
# =============================================================================

import logging
import os
from datetime import datetime

from config import LOGS_DIR

ROOT_LOGGER = "rehab"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def _root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:
        return root

    root.setLevel(logging.DEBUG)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%H:%M:%S")

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(formatter)
    root.addHandler(console)

    log_path = os.path.join(LOGS_DIR, datetime.now().strftime("rehab_%Y%m%d.log"))
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Usage:  from core.logger import get_logger
            log = get_logger(__name__)
            log.info("Message")   # → "rehab.<module> | Message"
    """
    _root()
    if name == "__main__":
        name = "main"
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def set_console_level(level: int) -> None:
    """Raise or lower console verbosity; the log file stays at DEBUG."""
    for handler in _root().handlers:
        if type(handler) is logging.StreamHandler:
            handler.setLevel(level)
