"""
JSON log output for the story delta planner.

Records from the ``storydelta`` logger tree are written one JSON object per
line to ``Settings.log_file``; warnings and errors are mirrored to stderr.
A planning run wraps its logger in ``PlanAdapter`` so that every record of
the run can be grepped by ``plan_id``::

    logger = PlanAdapter(get_logger(__name__), plan_id=uuid.uuid4().hex[:12])
    logger.info("chunk_applied | operations=%d", 3, extra={"chunk_index": 1})
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, MutableMapping

from storydelta.config import get_settings

ROOT_LOGGER = "storydelta"

# Attributes copied from ``extra=`` into the JSON line when present
CONTEXT_FIELDS = ("plan_id", "chunk_index", "duration_ms")


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (field, getattr(record, field))
            for field in CONTEXT_FIELDS
            if getattr(record, field, None) is not None
        )
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class PlanAdapter(logging.LoggerAdapter):
    """Stamps ``plan_id`` on every record; per-call ``extra`` keys are kept."""

    def __init__(self, logger: logging.Logger, plan_id: str):
        super().__init__(logger, {"plan_id": plan_id})

    def process(self, msg: str, kwargs: MutableMapping[str, Any]) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def setup_logging(log_file: str | None = None, level: int = logging.INFO) -> None:
    """Attach the file and stderr handlers to the ``storydelta`` logger once."""
    root = logging.getLogger(ROOT_LOGGER)
    if root.handlers:
        return

    formatter = JSONFormatter()
    file_handler = logging.FileHandler(log_file or get_settings().log_file, encoding="utf-8")
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    for handler in (file_handler, stderr_handler):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(level)
    root.propagate = False


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Logger inside the ``storydelta`` tree; foreign names are nested under it."""
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
