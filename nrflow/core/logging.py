"""Structured JSON logging for solver runs."""

from __future__ import annotations

import json
import logging
from typing import Any

from nrflow.config import settings

_EXTRA_FIELDS = ("iteration", "epsilon", "duration_ms", "outcome", "start_mode")


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter carrying solver context fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Include extra fields
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val

        return json.dumps(log_entry)


def setup_logging(json_format: bool | None = None, level: str | int | None = None) -> logging.Logger:
    """Configure the ``nrflow`` logger. Use json_format=True for machine-read logs.

    Omitted arguments fall back to ``settings.log_json`` and ``settings.log_level``.
    """
    if json_format is None:
        json_format = settings.log_json
    logger = logging.getLogger("nrflow")
    logger.setLevel(settings.log_level.upper() if level is None else level)

    handler = logging.StreamHandler()
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()
    logger.addHandler(handler)
    return logger
