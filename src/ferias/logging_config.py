"""Logging configuration for the ferias CLI.

Human-readable console output by default; JSON lines when
``FERIAS_LOG_FORMAT=json`` (or ``json_format=True``) for log collectors.
"""

from __future__ import annotations

import datetime
import json
import logging
import os
import sys

CONSOLE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(verbose: bool = False, json_format: bool | None = None) -> None:
    """Route ``ferias`` loggers to stderr.

    Warnings only unless *verbose*, in which case everything down to DEBUG.
    """
    if json_format is None:
        json_format = os.getenv("FERIAS_LOG_FORMAT", "").strip().lower() == "json"

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(CONSOLE_FORMAT))

    logger = logging.getLogger("ferias")
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False
