"""Logging helpers.

Text output by default; JSON lines when the process runs under a log
collector.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

# Reconciler extras passed through ``extra=`` on log calls.
RECONCILER_FIELDS = ("cycle", "resource_id", "node", "workload")
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record, stamped with the time the record was made."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "time": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "severity": record.levelname,
            "component": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        entry.update({k: getattr(record, k) for k in RECONCILER_FIELDS if getattr(record, k, None) is not None})
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", fmt: str = "text", stream: Optional[TextIO] = None) -> logging.Handler:
    """Install a single root handler; returns it so callers can detach it."""
    handler = logging.StreamHandler(stream or sys.stderr)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper())
    # The kubernetes client logs every request at DEBUG.
    logging.getLogger("kubernetes").setLevel(max(root.level, logging.INFO))
    return handler
