"""Logging configuration for the agenda service.

Application loggers share one stdout handler. The ``agenda.audit`` trail gets
its own handler and format (no logger name, ``AUDIT`` marker) and its own
level, so the mutation history can be kept at INFO while the rest of the
service runs quieter, or silenced independently. Calling twice is a no-op.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig

AUDIT_LOGGER = "agenda.audit"


def build_logging_config(level: str = "INFO", audit_level: str = "INFO") -> dict:
    level = level.upper()
    audit_level = audit_level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": "%(asctime)s %(levelname)s:%(name)s:%(message)s"},
            "audit": {"format": "%(asctime)s AUDIT %(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
            "audit": {
                "class": "logging.StreamHandler",
                "formatter": "audit",
                "stream": "ext://sys.stdout",
            },
        },
        "root": {"level": level, "handlers": ["console"]},
        "loggers": {
            AUDIT_LOGGER: {"level": audit_level, "handlers": ["audit"], "propagate": False},
            "uvicorn.access": {"level": level, "handlers": ["console"], "propagate": False},
        },
    }


def configure_logging(level: str = "INFO", audit_level: str = "INFO") -> None:
    """Apply the configuration unless the root logger is already set up (reloaders, test runners)."""
    if logging.getLogger().handlers:
        return
    dictConfig(build_logging_config(level, audit_level))
