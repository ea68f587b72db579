"""Structured logging for the gateway.

Records emitted while a gated API request is in flight carry that request's
context: trace id, path, method and, once a rule has matched, the limiter
tier. Redaction happens once, in ``SensitiveDataFilter``; formatters only
render what the filters leave on the record.
"""

from __future__ import annotations

import json
import logging
import sys
from contextvars import ContextVar
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, Mapping

from nerix_gateway.core.config import LogSettings, settings

REDACTED = "[REDACTED]"

# Header, credential and contact-form field names that never reach a sink.
SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "authorization",
        "x-api-key",
        "api_key",
        "cookie",
        "set-cookie",
        "password",
        "secret",
        "token",
        "email",
        "honeypot",
        "redis_url",
    }
)

# Attributes every LogRecord has; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


@dataclass(frozen=True)
class RequestContext:
    """Per-request fields attached to every log record."""

    trace_id: str
    path: str | None = None
    method: str | None = None
    tier: str | None = None

    def fields(self) -> dict[str, str]:
        return {key: value for key, value in asdict(self).items() if value is not None}


_request_context: ContextVar[RequestContext | None] = ContextVar("gate_request_context", default=None)


def bind_request_context(trace_id: str, *, path: str | None = None, method: str | None = None) -> None:
    """Start a logging context for the request being gated."""

    _request_context.set(RequestContext(trace_id=trace_id, path=path, method=method))


def bind_tier(tier: str) -> None:
    """Add the matched limiter tier to the current context, if there is one."""

    current = _request_context.get()
    if current is not None:
        _request_context.set(replace(current, tier=tier))


def clear_request_context() -> None:
    _request_context.set(None)


def get_request_context() -> RequestContext | None:
    return _request_context.get()


def get_trace_id() -> str | None:
    current = _request_context.get()
    return current.trace_id if current is not None else None


def extra_fields(record: LogRecord) -> dict[str, Any]:
    """Return the fields set on ``record`` beyond the standard attributes."""

    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


def _redact(value: Any, sensitive_keys: frozenset[str]) -> Any:
    if isinstance(value, Mapping):
        return {
            key: REDACTED if str(key).lower() in sensitive_keys else _redact(item, sensitive_keys)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(item, sensitive_keys) for item in value)
    return value


class RequestContextFilter(logging.Filter):
    """Copy the in-flight request context onto the record.

    Fields passed explicitly through ``extra`` win over the context.
    """

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        context = _request_context.get()
        if context is not None:
            for key, value in context.fields().items():
                record.__dict__.setdefault(key, value)
        return True


class SensitiveDataFilter(logging.Filter):
    """Replace sensitive extra fields (at any nesting depth) with a marker."""

    def __init__(self, sensitive_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self.sensitive_keys = frozenset(key.lower() for key in (sensitive_keys or SENSITIVE_KEYS))

    def filter(self, record: LogRecord) -> bool:  # noqa: D401
        for key, value in extra_fields(record).items():
            if key.lower() in self.sensitive_keys:
                record.__dict__[key] = REDACTED
            else:
                record.__dict__[key] = _redact(value, self.sensitive_keys)
        return True


class JsonFormatter(logging.Formatter):
    """Render a record as one JSON object per line."""

    def format(self, record: LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(extra_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_handler(log_settings: LogSettings) -> logging.Handler:
    if log_settings.output.lower() != "file":
        return logging.StreamHandler(sys.stdout)

    file_path = Path(log_settings.file_path or "logs/nerix-gateway.log")
    file_path.parent.mkdir(parents=True, exist_ok=True)
    if not log_settings.max_bytes:
        return logging.FileHandler(file_path, encoding="utf-8")
    return RotatingFileHandler(
        file_path,
        maxBytes=log_settings.max_bytes,
        backupCount=log_settings.backup_count,
        encoding="utf-8",
    )


def configure_logging(log_settings: LogSettings | None = None) -> None:
    """Install a single root handler with context, redaction and formatting.

    Args:
        log_settings: Optional log settings; defaults to global settings if omitted.
    """

    cfg = log_settings or settings.log

    handler = _build_handler(cfg)
    handler.addFilter(RequestContextFilter())
    handler.addFilter(SensitiveDataFilter())
    if cfg.format.lower() == "plain":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(getattr(logging, cfg.level.upper(), logging.INFO))

    # uvicorn installs its own handlers; keep its records from reaching ours twice
    for name in ("uvicorn", "uvicorn.access"):
        logging.getLogger(name).propagate = False
