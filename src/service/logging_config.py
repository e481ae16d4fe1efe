from __future__ import annotations

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

SERVICE_NAME = "vehicle-comparables"

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Loggers that should follow the service level instead of their library defaults.
_SERVICE_LOGGERS = ("comparables", "service")


def new_correlation_id() -> str:
    cid = uuid.uuid4().hex[:12]
    correlation_id.set(cid)
    return cid


class JSONFormatter(logging.Formatter):
    """One JSON object per line with a UTC ISO timestamp.

    Structured context passed as ``extra={"extra_data": {...}}`` is emitted
    under ``data``.
    """

    def __init__(self, service: str = SERVICE_NAME) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "service": self.service,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        cid = correlation_id.get("")
        if cid:
            entry["correlation_id"] = cid
        data = getattr(record, "extra_data", None)
        if data:
            entry["data"] = data
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    resolved = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(resolved)

    for h in root.handlers[:]:
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
        ))
    root.addHandler(handler)

    for name in _SERVICE_LOGGERS:
        logging.getLogger(name).setLevel(resolved)
    logging.getLogger("httpx").setLevel(max(resolved, logging.WARNING))
