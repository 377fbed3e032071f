import logging
import sys
import json
from datetime import datetime
from typing import Optional


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""
    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Add extra attributes if provided
        if hasattr(record, "extra_data"):
            log_entry.update(record.extra_data)

        return json.dumps(log_entry)


TEXT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

ROOT_LOGGER_NAME = "spiffe_jwt"


def configure_logging(level: str = "INFO", log_format: str = "text") -> logging.Logger:
    """
    Configures the package root logger once the settings are known.

    Every module logger is a child of ``spiffe_jwt`` so they all share this
    handler. Safe to call more than once; the handler is replaced, not stacked.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    handler = logging.StreamHandler(sys.stdout)

    if log_format == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root.handlers = [handler]
    root.setLevel(level.upper())
    root.propagate = False
    return root


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Returns a logger under the ``spiffe_jwt`` hierarchy."""
    if not name or name == ROOT_LOGGER_NAME:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
