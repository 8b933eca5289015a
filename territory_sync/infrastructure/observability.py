"""Structured Logging — JSON formatter and setup for the sync engine and its gateway.

Invariants:
    - Every record carries timestamp, level, logger name, and message
    - Sync context (room, actor, connection state, event kind, action, error code,
      attempt) is emitted only when the caller passed it via extra=
    - setup_logging() is idempotent: calling it again replaces its own handler

Design Decisions:
    - JSONFormatter over third-party libs: zero dependencies, full control
    - Plain format appends the sync context as key=value so local runs stay greppable
    - websockets and httpx loggers capped at WARNING: per-frame and per-request
      debug output would drown the engine's own lines
"""

import logging
import json
from datetime import datetime, timezone

SYNC_CONTEXT_FIELDS = (
    "room_id", "actor_id", "connection_state", "event_kind",
    "action", "error_code", "attempt",
)
_NOISY_LOGGERS = ("websockets", "httpx", "httpcore")
_HANDLER_NAME = "territory_sync"


def sync_context(record: logging.LogRecord) -> dict:
    """Sync context fields present on a record, in a stable order."""
    context = {}
    for key in SYNC_CONTEXT_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            context[key] = value
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc,
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **sync_context(record),
        }
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


class ContextTextFormatter(logging.Formatter):
    """Human-readable line followed by the sync context as key=value pairs."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = sync_context(record)
        if context:
            line += " " + " ".join(f"{k}={v}" for k, v in context.items())
        return line


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Install the territory_sync handler on the root logger."""
    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ContextTextFormatter())
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
