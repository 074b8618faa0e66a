"""Process-wide logging setup. Call LoggingConfig() once at startup."""

from __future__ import annotations

import logging
import logging.config
from typing import Optional

from review_bridge.config import get_settings

ROOT_LOGGER_NAME = "review_bridge"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class LoggingConfig:
    """Configure stdlib logging from settings (level from LOG_LEVEL)."""

    _configured = False

    def __init__(self, level: Optional[str] = None) -> None:
        if LoggingConfig._configured:
            return
        level = (level or get_settings().log_level or "INFO").upper()
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {"default": {"format": LOG_FORMAT}},
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "formatter": "default",
                    }
                },
                "loggers": {
                    ROOT_LOGGER_NAME: {
                        "handlers": ["console"],
                        "level": level,
                        "propagate": True,
                    },
                },
            }
        )
        LoggingConfig._configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger under the review_bridge namespace."""
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
