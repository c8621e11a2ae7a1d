"""
Structured logging for the control plane.

- JSON lines in production / staging, a one-line human format elsewhere
- Every record carries the request id and the acting admin
- Known ``extra=`` fields (entity_type, duration_ms, ...) are emitted as keys
- Admin refs are usually e-mail addresses, so they are masked on output
"""

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict

from control_plane.config import settings

# Set per request by RequestLoggingMiddleware
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
actor_ctx: ContextVar[str] = ContextVar("actor", default="-")

# Attributes passed through ``extra=`` that the JSON formatter keeps
EXTRA_FIELDS = ("entity_type", "fields", "error", "duration_ms", "statement", "threshold_ms")

_EMAIL = re.compile(r"\b([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
_SECRET = re.compile(r'((?:password|token|secret|authorization)"?\s*[:=]\s*)"[^"]*"', re.I)

_QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "asyncio", "sqlalchemy.engine")


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


def mask_pii(text: str) -> str:
    """``alice@coop.org`` -> ``a***@coop.org``; quoted credentials -> ``"***"``."""
    text = _SECRET.sub(r'\1"***"', text)
    return _EMAIL.sub(r"\1***@\2", text)


def _context() -> Dict[str, str]:
    return {"request_id": request_id_ctx.get(), "actor": mask_pii(actor_ctx.get())}


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "message": mask_pii(record.getMessage()),
            **_context(),
        }
        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                entry[field] = getattr(record, field)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        entry = {k: v for k, v in entry.items() if v not in (None, "", "-")}
        return json.dumps(entry, ensure_ascii=False, default=str)


class HumanFormatter(logging.Formatter):

    FORMAT = "%(asctime)s %(levelname)-7s %(name)s [%(request_id)s %(actor)s] %(message)s"

    def __init__(self):
        super().__init__(self.FORMAT, datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        # other handlers share ``record``; format a masked copy
        masked = logging.makeLogRecord(record.__dict__)
        masked.__dict__.update(_context())
        masked.msg, masked.args = mask_pii(record.getMessage()), ()
        return super().format(masked)


def setup_logging() -> None:
    """Install a single stdout handler on the root logger."""
    structured = settings.is_production or settings.is_staging

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if structured else HumanFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.INFO if structured else logging.DEBUG)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
