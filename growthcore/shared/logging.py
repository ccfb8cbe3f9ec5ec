"""
Structured JSON logging for growthcore.

Ledger writes carry their context (student, action, session, and whichever
challenge/reward/exchange they touched) as top-level JSON keys.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from growthcore.shared.config import settings

# Emitted first and in this order when present
CONTEXT_FIELDS = ("student_id", "action", "session_id", "challenge_id", "reward_id", "exchange_id")

# Attributes every LogRecord has; anything else came in through `extra`
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                payload[field] = value

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and key not in payload:
                payload[key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def _handler(handler: logging.Handler) -> logging.Handler:
    handler.setFormatter(StructuredFormatter())
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Route all loggers through the JSON formatter on stdout (and a file if set).

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR (defaults to settings.log_level)
        log_file: Optional path to also append JSON lines to
    """
    level_name = (log_level or settings.log_level).upper()
    log_file = log_file or settings.log_file

    root = logging.getLogger()
    root.setLevel(logging.getLevelName(level_name))
    root.handlers.clear()
    root.addHandler(_handler(logging.StreamHandler(sys.stdout)))

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        root.addHandler(_handler(logging.FileHandler(log_file, encoding="utf-8")))

    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    student_id: Optional[str] = None,
    action: Optional[str] = None,
    session_id: Optional[str] = None,
    **fields: Any
):
    """
    Log `message` with ledger context attached.

    None values are dropped so absent context never shows up as null.
    """
    context = {"student_id": student_id, "action": action, "session_id": session_id, **fields}
    logger.log(level, message, extra={k: v for k, v in context.items() if v is not None})


# Initialize logging on import
setup_logging()
