"""
Process-wide logging setup.

- development: human-readable, coloured, one line per record
- staging/production: one JSON object per line for log aggregation

``init`` is called once at startup; modules take their logger from
``get_logger(__name__)`` and never configure handlers themselves.
"""

import json
import logging
import os
import sys
from datetime import datetime

ROOT_LOGGER_NAME = "farmbid"

_JSON_ENVIRONMENTS = ("production", "prod", "staging")


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
        "ENDC": "\033[0m",
    }

    def format(self, record):
        level_color = self.COLORS.get(record.levelname, "")
        end_color = self.COLORS["ENDC"]
        timestamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        colored_level = f"{level_color}{record.levelname:8s}{end_color}"
        line = f"[{timestamp}] {colored_level} [{record.name}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class JsonFormatter(logging.Formatter):
    def __init__(self, environment: str):
        super().__init__()
        self.environment = environment

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "module": record.name,
            "message": record.getMessage(),
            "environment": self.environment,
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def init(level: str = "INFO", environment: str | None = None) -> None:
    environment = (environment or os.getenv("ENVIRONMENT", "development")).lower()
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    if environment in _JSON_ENVIRONMENTS:
        handler.setFormatter(JsonFormatter(environment))
    else:
        handler.setFormatter(ColoredFormatter())

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)
    # Keep records out of uvicorn's root handlers to avoid duplicates
    root.propagate = False


def get_logger(name: str) -> logging.Logger:
    if name == "__main__":
        name = f"{ROOT_LOGGER_NAME}.main"
    return logging.getLogger(name)
