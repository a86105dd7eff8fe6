"""Logging configuration.

Console logging for the ``app`` and ``scripts`` logger trees, either as plain
text or as JSON lines (python-json-logger) for log shippers.
"""
from __future__ import annotations
import logging
import logging.config
import sys
from typing import Any, Dict


def get_logging_config(log_level: str = "INFO", log_format: str = "text") -> Dict[str, Any]:
    """Build the ``dictConfig`` payload.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: ``"json"`` or ``"text"``

    Returns:
        Logging configuration dictionary
    """
    formatters = {
        "text": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
        "json": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(name)s %(levelname)s %(module)s %(lineno)d %(message)s",
        },
    }
    formatter_name = "json" if log_format == "json" else "text"

    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": formatter_name,
            "stream": sys.stdout,
        }
    }

    # Records still propagate to the root logger so container/test capture sees them.
    loggers = {
        name: {"level": log_level, "handlers": ["console"], "propagate": True}
        for name in ("app", "scripts")
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": handlers,
        "loggers": loggers,
    }


def setup_logging(log_level: str = "INFO", log_format: str = "text") -> None:
    """Apply the logging configuration."""
    logging.config.dictConfig(get_logging_config(log_level=log_level, log_format=log_format))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
