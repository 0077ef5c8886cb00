"""
Logging configuration.
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from atlas_acl.config import AppSettings

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"


def setup_logging(settings: AppSettings) -> logging.Logger:
    """Configure the root logger from runtime settings.

    Re-running replaces the handlers installed by a previous call instead of
    stacking duplicates.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(log_level)
    for handler in list(logger.handlers):
        if getattr(handler, "_atlas_acl_handler", False):
            logger.removeHandler(handler)
            handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    console_handler._atlas_acl_handler = True  # type: ignore[attr-defined]
    logger.addHandler(console_handler)

    log_file = settings.log_file.strip()
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        file_handler._atlas_acl_handler = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    return logger
