"""Shared logging configuration for the API and the cron entry points."""

from __future__ import annotations

import logging
import os
from collections import deque
from datetime import datetime, timezone
from typing import Any, Optional

from pythonjsonlogger import jsonlogger

_CONFIGURED = False
_LOG_BUFFER: deque[dict[str, Any]] = deque(maxlen=200)

# attributes every LogRecord carries; anything else arrived through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "service"}


class _ServiceNameFilter(logging.Filter):
    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service_name
        return True


class _BufferHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
            _LOG_BUFFER.appendleft(
                {
                    "time": timestamp.isoformat(),
                    "level": record.levelname,
                    "name": record.name,
                    "message": record.getMessage(),
                    "context": {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS},
                }
            )
        except Exception:
            self.handleError(record)


def setup_logging(service_name: Optional[str] = None) -> None:
    """Configure root logging with a JSON formatter and the service name on every record."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    service = service_name or os.getenv("SERVICE_NAME", "shopfloor-platform")

    handler = logging.StreamHandler()
    handler.setFormatter(
        jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(service)s")
    )
    handler.addFilter(_ServiceNameFilter(service))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.addHandler(_BufferHandler())
    root.setLevel(log_level)
    logging.captureWarnings(True)
    _CONFIGURED = True


def get_log_buffer(limit: int = 100) -> list[dict[str, Any]]:
    return list(_LOG_BUFFER)[:limit]


__all__ = ["setup_logging", "get_log_buffer"]
