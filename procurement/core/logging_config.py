from __future__ import annotations

import logging.config

from procurement.core.config import settings


def configure_logging(level: str | None = None) -> None:
    """Install a console handler for the ``procurement`` logger tree."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                },
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "loggers": {
                "procurement": {
                    "handlers": ["console"],
                    "level": level or settings.log_level,
                    "propagate": False,
                },
                "apscheduler": {
                    "handlers": ["console"],
                    "level": "WARNING",
                    "propagate": False,
                },
            },
        }
    )
