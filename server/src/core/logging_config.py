"""
Logging setup for the Skirmish server.

Every application logger lives under ``skirmish`` and hands its records to
the root handlers. Production writes JSON lines so the ``extra`` fields
attached by the services stay machine readable.
"""

import logging
import logging.config
import os
import sys
from typing import Any, Dict


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_logging_config() -> Dict[str, Any]:
    """Build the dictConfig mapping for the current environment."""
    log_level = get_log_level()

    if os.getenv("ENVIRONMENT", "development").lower() == "production":
        formatter = {
            "class": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
        }
    else:
        formatter = {
            "class": "logging.Formatter",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        }

    quiet = {"level": "WARNING"}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "skirmish": {"level": log_level},
            "pymongo": quiet,
            "uvicorn.access": quiet,
        },
        "root": {"level": log_level, "handlers": ["console"]},
    }


def setup_logging() -> None:
    """Apply the logging configuration. Call once at startup."""
    logging.config.dictConfig(get_logging_config())
    logging.getLogger("skirmish.logging").info(
        "Logging configured",
        extra={
            "log_level": get_log_level(),
            "environment": os.getenv("ENVIRONMENT", "development"),
        },
    )


def get_logger(name: str) -> logging.Logger:
    """
    Return the ``skirmish.*`` logger for a module name.

    ``server.src.api.router`` maps to ``skirmish.router`` and
    ``server.src.services.login_service`` to ``skirmish.services``.
    """
    if name.startswith("skirmish"):
        return logging.getLogger(name)

    parts = name.split(".")
    if parts[:2] == ["server", "src"] and len(parts) > 2:
        component = parts[3] if parts[2] == "api" and len(parts) > 3 else parts[2]
        return logging.getLogger(f"skirmish.{component}")
    return logging.getLogger(f"skirmish.{name}")
