"""Root logging setup for the API process and the CLI.

Every record is first flattened into a payload dict (event name, context ids,
redacted ``extra`` fields). ``json`` output dumps that dict per line; the
``console`` layout puts the run token and catalog id next to the event so a
single ingestion run can be followed by eye.
"""

from __future__ import annotations

from datetime import UTC, datetime
import json
import logging
import sys
from typing import Any

from anisync.logging_context import get_request_id, get_run_token

DEFAULT_REDACT_FIELDS = frozenset({"authorization", "control_token", "cookie", "database_url", "token"})
REDACTED = "[REDACTED]"

_RESERVED_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime", "color_message"}
_HEADER_KEYS = ("timestamp", "level", "logger", "event", "exception")
_LEVEL_TAGS = {"DEBUG": "DBG", "INFO": "INF", "WARNING": "WRN", "ERROR": "ERR", "CRITICAL": "CRT"}

# Third-party loggers and the most verbose level they may emit at.
_CHATTY_LOGGERS = {"httpx": logging.WARNING, "httpcore": logging.WARNING, "aiosqlite": logging.WARNING}


def parse_redact_fields(raw: str | None) -> set[str]:
    extra = {item.strip().lower() for item in (raw or "").split(",")}
    return set(DEFAULT_REDACT_FIELDS) | {item for item in extra if item}


def configure_logging(
    *,
    level: str,
    log_format: str,
    redact_fields: set[str],
    include_uvicorn_access: bool = False,
) -> None:
    resolved_level = logging.getLevelNamesMapping().get(level.strip().upper(), logging.INFO)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(resolved_level)
    handler.addFilter(LogContextFilter())
    if log_format.strip().lower() == "json":
        handler.setFormatter(JsonLogFormatter(redact_fields=redact_fields))
    else:
        handler.setFormatter(ConsoleLogFormatter(redact_fields=redact_fields))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(resolved_level)
    root_logger.addHandler(handler)

    # uvicorn installs its own handlers; route everything through ours instead.
    access_level = resolved_level if include_uvicorn_access else logging.WARNING
    for name, framework_level in (
        ("uvicorn", resolved_level),
        ("uvicorn.error", resolved_level),
        ("uvicorn.access", access_level),
    ):
        framework_logger = logging.getLogger(name)
        framework_logger.handlers.clear()
        framework_logger.propagate = True
        framework_logger.setLevel(framework_level)

    for name, floor in _CHATTY_LOGGERS.items():
        logging.getLogger(name).setLevel(max(resolved_level, floor))


class LogContextFilter(logging.Filter):
    """Copies the request id and run token from contextvars onto the record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for attr, getter in (("request_id", get_request_id), ("run_token", get_run_token)):
            if getattr(record, attr, None):
                continue
            value = getter()
            if value:
                setattr(record, attr, value)
        return True


def redact(key: str, value: Any, fields: frozenset[str]) -> Any:
    if key.lower() in fields:
        return REDACTED
    if isinstance(value, dict):
        return {nested_key: redact(nested_key, nested, fields) for nested_key, nested in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(key, item, fields) for item in value]
    return value


class _PayloadFormatter(logging.Formatter):
    def __init__(self, *, redact_fields: set[str]) -> None:
        super().__init__()
        self._redact_fields = frozenset(field.lower() for field in redact_fields)

    def payload(self, record: logging.LogRecord) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).strftime("%Y-%m-%d %H:%M:%SZ"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": getattr(record, "event", None) or record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_") or key == "event":
                continue
            payload[key] = redact(key, value, self._redact_fields)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return payload


class JsonLogFormatter(_PayloadFormatter):
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(self.payload(record), ensure_ascii=True, default=str)


class ConsoleLogFormatter(_PayloadFormatter):
    """``<ts> <LVL> [run] <logger> <event> id=<catalog_id> key=value ...``"""

    def format(self, record: logging.LogRecord) -> str:
        payload = self.payload(record)
        level = payload["level"].upper()
        parts = [payload["timestamp"], _LEVEL_TAGS.get(level, level[:3])]

        run_token = payload.pop("run_token", None)
        if run_token:
            parts.append(f"[run={run_token}]")
        parts.extend((payload["logger"], str(payload["event"])))

        catalog_id = payload.pop("catalog_id", None)
        if catalog_id is not None:
            parts.append(f"id={catalog_id}")
        request_id = payload.pop("request_id", None)
        if request_id:
            parts.append(f"rid={request_id}")

        parts.extend(f"{key}={payload[key]}" for key in sorted(payload) if key not in _HEADER_KEYS)
        line = " ".join(str(part) for part in parts)
        if "exception" in payload:
            line = f"{line}\n{payload['exception']}"
        return line
