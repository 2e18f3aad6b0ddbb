"""
Chart State - Structured Logging

JSON log lines for resolutions and data refreshes, one object per line.

Design decisions:
  - Transport: Python logging with a JSON formatter
  - Schema: timestamp, level, logger, message, service.name plus the
    structured fields of each event
  - Configurable level: DEBUG (full resolution audit logs), INFO
    (update runs), WARNING (predicate failures, rule conflicts, errors)

Usage:
    from chartstate.logging import EventLogger, configure_logging

    configure_logging(level="DEBUG")
    events = EventLogger("resolver")
    events.on_resolution("explorer", resolved, url="c=DEU")

    # Children share the session id
    queue_events = events.child("update_queue")
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from typing import Any

ROOT_LOGGER = "chartstate"


# ═══════════════════════════════════════════════════════════════════
# JSON Formatter
# ═══════════════════════════════════════════════════════════════════

class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def __init__(self, service_name: str = "chartstate"):
        super().__init__()
        self.service_name = service_name
        self.service_version = os.environ.get("CS_VERSION", "0.1.0")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service.name": self.service_name,
            "service.version": self.service_version,
        }

        # Merge structured fields from extra
        if hasattr(record, "structured"):
            entry.update(record.structured)

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception.type"] = record.exc_info[0].__name__
            entry["exception.message"] = str(record.exc_info[1])

        return json.dumps(entry, default=str)


# ═══════════════════════════════════════════════════════════════════
# Log Configuration
# ═══════════════════════════════════════════════════════════════════

def configure_logging(
    level: str = "INFO",
    stream: Any = None,
    service_name: str = "chartstate",
) -> logging.Logger:
    """
    Configure the chartstate logger with JSON output.

    Args:
        level: DEBUG, INFO, WARNING, ERROR
        stream: Output stream (default: sys.stderr)
        service_name: Service name in log entries

    Returns:
        The configured chartstate logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Avoid duplicate handlers on reconfigure
    logger.handlers.clear()

    for name in list(logging.Logger.manager.loggerDict.keys()):
        if name.startswith(ROOT_LOGGER + "."):
            child = logging.getLogger(name)
            child.handlers.clear()
            child.setLevel(logging.NOTSET)  # Inherit from parent

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter(service_name=service_name))
    handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: str = "") -> logging.Logger:
    """Get a child logger under the chartstate namespace."""
    if name:
        return logging.getLogger(f"{ROOT_LOGGER}.{name}")
    return logging.getLogger(ROOT_LOGGER)


def generate_session_id() -> str:
    return uuid.uuid4().hex[:16]


# ═══════════════════════════════════════════════════════════════════
# Event Logger
# ═══════════════════════════════════════════════════════════════════

class EventLogger:
    """
    Emits structured events for one component. Every entry carries the
    component name and a session id shared with child loggers.
    """

    def __init__(self, component: str, session_id: str | None = None):
        self.component = component
        self.session_id = session_id or generate_session_id()
        self._logger = get_logger(component)

    def child(self, component: str) -> EventLogger:
        return EventLogger(component, session_id=self.session_id)

    def enabled(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)

    def _emit(self, level: int, action: str, message: str = "", **fields):
        if not self._logger.isEnabledFor(level):
            return
        structured = {
            "session_id": self.session_id,
            "component": self.component,
            "action": action,
            **fields,
        }
        self._logger.log(level, message or action, extra={"structured": structured})

    # ── Resolution ──────────────────────────────────────────────

    def on_resolution(self, catalog: str, resolved: Any, url: str = "") -> None:
        """Full audit log of a resolution, at DEBUG."""
        if not self.enabled(logging.DEBUG):
            return
        log = resolved.log
        trigger = "initial" if log.is_initial else log.trigger.field
        self._emit(
            logging.DEBUG, "resolution",
            f"Resolved {catalog} state ({trigger}): {len(log.changes)} change(s)",
            catalog=catalog,
            view=resolved.view,
            log=log.to_dict(),
            user_overrides=sorted(resolved.user_overrides),
            url=url,
        )

    # ── Updates ─────────────────────────────────────────────────

    def on_update_start(self, key: str, plan: dict[str, Any]) -> None:
        self._emit(logging.INFO, "update_start", f"Running update for '{key}'",
                   key=key, plan=plan)

    def on_update_end(self, key: str, status: str, elapsed_s: float) -> None:
        self._emit(
            logging.INFO, "update_end", f"Update for '{key}' {status}",
            key=key, status=status, elapsed_s=round(elapsed_s, 3),
        )

    def on_update_skipped(self, key: str) -> None:
        self._emit(logging.DEBUG, "update_skipped", f"No refresh needed for '{key}'", key=key)

    def on_update_superseded(self, key: str, superseded_by: str) -> None:
        self._emit(
            logging.DEBUG, "update_superseded",
            f"Pending update '{key}' superseded by '{superseded_by}'",
            key=key, superseded_by=superseded_by,
        )

    def on_update_error(self, key: str, error: BaseException) -> None:
        self._emit(
            logging.WARNING, "update_error",
            f"Update for '{key}' failed: {type(error).__name__}: {error}",
            key=key, error_type=type(error).__name__, error=str(error)[:500],
        )
