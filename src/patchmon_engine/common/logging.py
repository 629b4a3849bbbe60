"""Structured JSON logging for PatchMon-Engine.

Context passed through ``extra=`` is copied into the JSON line when the key is
one of ``CONTEXT_FIELDS``, e.g.::

    logger.warning("IP denied", extra={"client_ip": ip, "token_key": key})
"""

import logging
import json
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "client_ip",
    "user_id",
    "session_id",
    "host_id",
    "token_key",
)


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Attach the JSON handler to the ``patchmon_engine`` logger tree once."""
    root = logging.getLogger("patchmon_engine")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    # create_app() may run more than once per process (tests, reloads).
    if not any(isinstance(h.formatter, JSONFormatter) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
    root.propagate = False
