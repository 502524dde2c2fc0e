"""
Application Logging

Every component logs through a ``banking.<component>`` logger. Records can
carry who acted (``user_id``), what they did (``action``), on what
(``resource``) and free-form ``extra`` data; the JSON formatter lifts those
onto the top level of each line.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional


TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

STRUCTURED_FIELDS = ("user_id", "action", "resource", "extra")


class JSONFormatter(logging.Formatter):
    """One JSON object per line; unset structured fields are omitted"""

    def format(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "module": record.module,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in STRUCTURED_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "banking",
                  fmt: str = "json") -> logging.Logger:
    """
    Point ``logger_name`` at stderr with a single handler.

    Calling it again replaces the handler, so the API factory and the seed
    script can both call it. ``fmt`` is "json" or "text".
    """
    logger = logging.getLogger(logger_name)
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(TEXT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(level.upper())
    logger.propagate = False

    return logger


def get_logger(name: str = "banking") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None):
    """
    Log ``message`` at ``level`` ("info", "warning", ...) with the given
    structured fields attached to the record. Empty fields are left off.
    """
    fields = {"user_id": user_id, "action": action, "resource": resource, "extra": extra}
    # stacklevel=2 attributes the record to the caller, not this helper
    logger.log(getattr(logging, level.upper()), message,
               extra={k: v for k, v in fields.items() if v}, stacklevel=2)
