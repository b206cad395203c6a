"""JSON logging configuration with session context and rate limiting."""

import logging
import sys
import time
from collections import defaultdict
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pythonjsonlogger import jsonlogger

from fleetdash.app.config import get_settings

# Context variable for the dashboard session that emitted the log
session_id_ctx: ContextVar[str | None] = ContextVar("session_id", default=None)


def get_session_id() -> str | None:
    """Get current session_id from context."""
    return session_id_ctx.get()


def set_session_id(session_id: str | None = None) -> str:
    """Set session_id in context, generating one if not provided.

    Args:
        session_id: Optional session ID to set. If None, generates a new one.

    Returns:
        The session ID that was set.
    """
    sid = session_id or uuid4().hex[:12]
    session_id_ctx.set(sid)
    return sid


def clear_session_context() -> None:
    """Clear session context (call at session teardown)."""
    session_id_ctx.set(None)


class RateLimitFilter(logging.Filter):
    """Rate limit filter to prevent log storms.

    Limits identical log messages to a configurable rate per minute.
    ERROR logs bypass rate limiting and are always logged.
    """

    def __init__(self, rate_per_minute: int = 100) -> None:
        super().__init__()
        self.rate_per_minute = rate_per_minute
        self._counts: dict[str, list[float]] = defaultdict(list)
        self._warned: set[str] = set()

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.ERROR:
            return True

        key = f"{record.name}:{record.lineno}:{record.msg}"
        now = time.time()

        self._counts[key] = [t for t in self._counts[key] if now - t < 60]

        if len(self._counts[key]) >= self.rate_per_minute:
            # Emit once with a marker, then suppress until the window passes
            if key not in self._warned:
                self._warned.add(key)
                record.msg = f"[RATE LIMITED] {record.msg} (max {self.rate_per_minute}/min)"
                self._counts[key].append(now)
                return True
            return False

        if key in self._warned and len(self._counts[key]) < self.rate_per_minute // 2:
            self._warned.discard(key)

        self._counts[key].append(now)
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with schema version and session context.

    Adds the following standard fields to all logs:
    - timestamp: ISO 8601 format with timezone
    - level: Log level name
    - logger: Logger name
    - schema_version: Log schema version
    - service: Service name
    - session_id: Dashboard session ID (if set in context)
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        settings = get_settings()
        self._schema_version = settings.logging.schema_version
        self._service = settings.logging.service_name

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = datetime.fromtimestamp(
            record.created, tz=timezone.utc
        ).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["funcName"] = record.funcName
        log_record["lineno"] = record.lineno

        log_record["schema_version"] = self._schema_version
        log_record["service"] = self._service

        if session_id := get_session_id():
            log_record["session_id"] = session_id

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def setup_logging(level: int | str | None = None, json_format: bool | None = None) -> None:
    """Configure logging for the application.

    Args:
        level: Log level. If None, uses LOGGING_LEVEL from settings.
        json_format: JSON output. If None, uses LOGGING_FORMAT from settings.
    """
    settings = get_settings()

    if level is None:
        level = settings.logging.level
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    if json_format is None:
        json_format = settings.logging.format.lower() == "json"

    formatter: logging.Formatter
    if json_format:
        formatter = CustomJsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s")

    # stderr keeps stdout free for the instance table
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(RateLimitFilter(settings.logging.rate_limit_per_minute))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Suppress verbose client library logs (per-request and per-frame noise)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("websockets").setLevel(logging.WARNING)
