"""
Structured logging for the ride boost API
=========================================

A log line about a ride should say which request, which reward and which
bet it belongs to. Two context variables carry that:

    request_id     set per HTTP request by RequestCorrelationMiddleware
                   (X-Request-ID read from the request, echoed on the response)
    ride context   reward_id / bet_id / user_id, bound by the routers with
                   bind_log_context() around one service call

The formatters attach both to every record, so service code passes only what
is specific to the event:

    log_info(logger, "Boost locked", locked_boost_pct=0.31)
    # {"timestamp": "...", "level": "INFO", "message": "Boost locked",
    #  "request_id": "req-...", "reward_id": "...", "bet_id": "bet-1",
    #  "locked_boost_pct": 0.31, ...}

LOG_FORMAT selects json (default) or text; LOG_LEVEL as usual. Every field
passes through core.log_sanitizer, so seeds and credentials never reach output.
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from core.log_sanitizer import REDACTED, is_sensitive_key, sanitize_dict
from env_config import Config

REQUEST_ID_HEADER = "X-Request-ID"

_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_ride_ctx: ContextVar[Optional[Dict[str, Any]]] = ContextVar("ride_context", default=None)

# Attributes every LogRecord has; anything else on a record is an extra field
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}

access_logger = logging.getLogger("ride_boost.access")


# ============================================================================
# CONTEXT
# ============================================================================

def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


def set_request_id(request_id: str) -> None:
    _request_id_ctx.set(request_id)


def clear_request_id() -> None:
    _request_id_ctx.set(None)


def generate_request_id() -> str:
    return f"req-{uuid.uuid4().hex[:12]}"


def get_log_context() -> Dict[str, Any]:
    """Copy of the ride fields bound for the current operation."""
    return dict(_ride_ctx.get() or {})


@contextmanager
def bind_log_context(**fields: Any) -> Iterator[Dict[str, Any]]:
    """
    Attach ride identifiers to every record logged inside the block.

    Nested blocks add to the outer binding; None values are skipped. The
    previous binding is restored on exit.
    """
    merged = get_log_context()
    merged.update({k: v for k, v in fields.items() if v is not None})
    token = _ride_ctx.set(merged)
    try:
        yield merged
    finally:
        _ride_ctx.reset(token)


def _record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Bound ride context, then the record's own extras (which win on clashes)."""
    fields = get_log_context()
    for key, value in vars(record).items():
        if key not in _RECORD_ATTRS and not key.startswith("_"):
            fields[key] = value
    return fields


def _safe(key: str, value: Any) -> Any:
    if is_sensitive_key(key):
        return REDACTED
    if isinstance(value, dict):
        return sanitize_dict(value)
    return value


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, timezone.utc)


# ============================================================================
# FORMATTERS
# ============================================================================

class JSONFormatter(logging.Formatter):
    """
    One JSON object per line:

    {"timestamp": "2026-03-01T12:00:00.123456+00:00", "level": "INFO",
     "logger": "services.boost_lock_service", "message": "Boost locked",
     "service": "ride-boost", "request_id": "req-abc123def456",
     "function": "lock_boost", "line": 216, "reward_id": "...", ...}

    Base keys cannot be overwritten by extras.
    """

    def __init__(self, service: str = "ride-boost"):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service,
        }
        request_id = get_request_id()
        if request_id:
            entry["request_id"] = request_id
        entry["function"] = record.funcName
        entry["line"] = record.lineno

        for key, value in _record_fields(record).items():
            entry.setdefault(key, _safe(key, value))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """
    Console format for local runs, fields appended as key=value:

    2026-03-01 12:00:00.123 [INFO] [req-abc123] services.boost_lock_service:lock_boost:216 - Boost locked bet_id=bet-1
    """

    def format(self, record: logging.LogRecord) -> str:
        stamp = _timestamp(record).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        line = (
            f"{stamp} [{record.levelname}] [{get_request_id() or '-'}] "
            f"{record.name}:{record.funcName}:{record.lineno} - {record.getMessage()}"
        )

        fields = _record_fields(record)
        if fields:
            line += " " + " ".join(f"{key}={_safe(key, value)}" for key, value in fields.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# ============================================================================
# MIDDLEWARE
# ============================================================================

class RequestCorrelationMiddleware(BaseHTTPMiddleware):
    """
    Reads X-Request-ID (or mints one), echoes it on the response and writes
    one access line per request. Health checks log at DEBUG.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
        token = _request_id_ctx.set(request_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id

            path = request.url.path
            access_logger.log(
                logging.DEBUG if path == "/health" else logging.INFO,
                "%s %s -> %s",
                request.method,
                path,
                response.status_code,
                extra={
                    "method": request.method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                },
            )
            return response
        finally:
            _request_id_ctx.reset(token)


# ============================================================================
# SETUP AND HELPERS
# ============================================================================

def configure_structured_logging(level: Optional[str] = None, format_type: Optional[str] = None) -> logging.Handler:
    """
    Replace the root handlers with a single stdout handler.

    Call once at startup; calling again swaps the handler rather than adding
    a second one. Defaults come from Config.LOG_LEVEL / Config.LOG_FORMAT.
    """
    level = (level or Config.LOG_LEVEL).upper()
    format_type = (format_type or Config.LOG_FORMAT).lower()

    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if format_type == "json" else TextFormatter())
    root.addHandler(handler)

    # uvicorn's access log duplicates the middleware's
    for name in ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return handler


def log_event(logger: logging.Logger, level: int, message: str, **extra: Any) -> None:
    """Log with structured fields. Keys that clash with LogRecord attributes get a field_ prefix."""
    fields = {(f"field_{key}" if key in _RECORD_ATTRS else key): value for key, value in extra.items()}
    logger.log(level, message, extra=fields)


def log_info(logger: logging.Logger, message: str, **extra: Any) -> None:
    log_event(logger, logging.INFO, message, **extra)


def log_warning(logger: logging.Logger, message: str, **extra: Any) -> None:
    log_event(logger, logging.WARNING, message, **extra)


def log_error(logger: logging.Logger, message: str, **extra: Any) -> None:
    log_event(logger, logging.ERROR, message, **extra)


def log_debug(logger: logging.Logger, message: str, **extra: Any) -> None:
    log_event(logger, logging.DEBUG, message, **extra)
