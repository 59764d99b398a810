"""Logging configuration helpers."""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import UTC, datetime
from typing import Any

from .config import LoggingSettings

AUDIT_LOGGER_NAME = "order_desk.audit"


def _structured_formatter() -> dict[str, Any]:
    """Return a dictConfig fragment for structured logs."""
    return {
        "format": "{asctime} {levelname} {name} {message}",
        "style": "{",
    }


def _plain_formatter() -> dict[str, Any]:
    """Return a dictConfig fragment for human readable logs."""
    return {
        "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
    }


def configure_logging(settings: LoggingSettings) -> None:
    """Configure application logging according to provided settings."""
    formatter = _structured_formatter() if settings.structured else _plain_formatter()

    dict_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": formatter,
            "audit": {"format": "%(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "level": settings.level,
            },
        },
        "loggers": {},
        "root": {
            "handlers": ["console"],
            "level": settings.level,
        },
    }

    if settings.audit_path is not None:
        settings.audit_path.parent.mkdir(parents=True, exist_ok=True)
        dict_config["handlers"]["audit_file"] = {
            "class": "logging.FileHandler",
            "formatter": "audit",
            "filename": str(settings.audit_path),
            "encoding": "utf-8",
            "level": "INFO",
        }
        dict_config["loggers"][AUDIT_LOGGER_NAME] = {
            "handlers": ["audit_file"],
            "level": "INFO",
            "propagate": False,
        }

    logging.config.dictConfig(dict_config)


def audit(event: str, **fields: Any) -> None:
    """Write one JSON line describing ``event`` to the audit logger."""
    record = {"ts": datetime.now(tz=UTC).isoformat(), "event": event, **fields}
    logging.getLogger(AUDIT_LOGGER_NAME).info(
        json.dumps(record, default=str, sort_keys=True)
    )


__all__ = ["AUDIT_LOGGER_NAME", "audit", "configure_logging"]
