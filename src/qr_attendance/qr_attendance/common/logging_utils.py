from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any

DEFAULT_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def configure_logging(settings: Any) -> None:
    """Install root handlers once; later calls (tests, reloader) are no-ops."""

    root_logger = logging.getLogger()
    if root_logger.handlers:
        return

    level = getattr(logging, str(getattr(settings, "LOG_LEVEL", "INFO")).upper(), logging.INFO)
    formatter = logging.Formatter(getattr(settings, "LOG_FORMAT", DEFAULT_LOG_FORMAT))

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    log_file = getattr(settings, "LOG_FILE", None)
    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=int(getattr(settings, "LOG_MAX_BYTES", 2_500_000)),
            backupCount=int(getattr(settings, "LOG_BACKUP_COUNT", 5)),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(level)
