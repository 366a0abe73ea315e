"""
Structured JSON logging for ingestion observability.

Provides single-line JSON logs with a trace ID and the current fetch slot,
so every line written during one slot execution can be correlated.
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variables for trace correlation
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)
slot_var: ContextVar[str | None] = ContextVar("slot", default=None)

# Extra fields copied from `extra={...}` onto the JSON record
_EXTRA_KEYS = (
    "event",
    "provider",
    "duration_ms",
    "articles",
    "inserted",
    "updated",
    "errors",
    "rejected",
    "params",
    "status",
)


# -----------------------------------------------------------------------------
# JSON Formatter
# -----------------------------------------------------------------------------


class JSONFormatter(logging.Formatter):
    """
    Format log records as single-line JSON.

    Output format:
    {"timestamp": "...", "level": "INFO", "message": "...", "trace_id": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add trace context if available
        trace_id = trace_id_var.get()
        if trace_id:
            log_data["trace_id"] = trace_id

        slot = slot_var.get()
        if slot:
            log_data["slot"] = slot

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in _EXTRA_KEYS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, default=str)


def configure_logging(json_format: bool = True, level: str = "INFO") -> None:
    """
    Configure root logging for production or local development.

    Args:
        json_format: If True, use JSON format. If False, use human-readable format.
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


def new_trace_id() -> str:
    return uuid.uuid4().hex[:12]


# -----------------------------------------------------------------------------
# Context Managers
# -----------------------------------------------------------------------------


@contextmanager
def log_slot(slot: str, trace_id: str | None = None):
    """
    Context manager for slot-level logging.

    Logs slot start and end with duration; sets the slot and trace context
    for every log line written inside the block.

    Usage:
        with log_slot("MORNING"):
            # ... fetch, normalize, commit ...
    """
    trace_token = trace_id_var.set(trace_id or new_trace_id())
    slot_token = slot_var.set(slot)

    start_time = time.time()
    logger = logging.getLogger("ingestion")

    logger.info(f"Slot {slot} started", extra={"event": "slot_start"})

    try:
        yield
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Slot {slot} completed",
            extra={"event": "slot_complete", "duration_ms": duration_ms},
        )
    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        logger.error(
            f"Slot {slot} failed: {e}",
            extra={"event": "slot_failed", "duration_ms": duration_ms},
            exc_info=True,
        )
        raise
    finally:
        slot_var.reset(slot_token)
        trace_id_var.reset(trace_token)
