"""
Structured JSON logging.

Every line is one JSON object. Fields passed through ``extra={...}`` are
merged into it, and the account currently being governed (bound per request
or per scheduler iteration) is attached automatically.
"""

import json
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from governor.config import get_settings

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

account_id_var: ContextVar[str | None] = ContextVar("account_id", default=None)

# LogRecord attributes that are never copied into the JSON body.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Renders a record and its ``extra`` fields as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        bound_account = account_id_var.get()
        if bound_account:
            log_data["account_id"] = bound_account

        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS:
                continue
            if key in ("timestamp", "level", "logger"):
                key = f"extra_{key}"
            log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


@contextmanager
def bind_account(account_id: Any) -> Iterator[None]:
    """Attach ``account_id`` to every log line emitted inside the block."""
    token = account_id_var.set(str(account_id))
    try:
        yield
    finally:
        account_id_var.reset(token)


def get_logger(name: str) -> logging.Logger:
    """Get a logger that writes structured lines to stdout.

    Args:
        name: Logger name (typically __name__).
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.propagate = False

    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    return logger


def setup_logging() -> None:
    """Route the root logger through the JSON formatter and quiet library loggers."""
    settings = get_settings()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level.upper())
    root_logger.handlers = [handler]

    # Opt in to SQL echo with SQLALCHEMY_LOG_LEVEL=INFO
    sqlalchemy_level = os.getenv("SQLALCHEMY_LOG_LEVEL", "").strip().upper() or "WARNING"
    for name in ("sqlalchemy.engine", "sqlalchemy.pool", "sqlalchemy.dialects"):
        logging.getLogger(name).setLevel(sqlalchemy_level)

    for name in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.WARNING)
