from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from leadflow.context import get_correlation_id
from leadflow.core.config import get_settings

# Extras that identify the lead being worked on; grouped under "lead" in the JSON line.
LEAD_CONTEXT_FIELDS = ("vendor_id", "lead_id", "user_id", "stage", "status_tag")
EVENT_FIELDS = (
    "method",
    "path",
    "status_code",
    "duration_ms",
    "task_id",
    "task_type",
    "document_count",
    "cache_key",
    "error",
)
MAX_ERROR_LENGTH = 500

_default_record_factory = logging.getLogRecordFactory()


def _record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _default_record_factory(*args, **kwargs)
    if not getattr(record, "correlation_id", None):
        record.correlation_id = get_correlation_id()
    return record


def _pick(record: logging.LogRecord, names: tuple[str, ...]) -> dict[str, Any]:
    return {name: getattr(record, name) for name in names if getattr(record, name, None) is not None}


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: event name, correlation id, lead context and event fields."""

    def format(self, record: logging.LogRecord) -> str:
        fields = _pick(record, EVENT_FIELDS)
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
        }
        lead = _pick(record, LEAD_CONTEXT_FIELDS)
        if lead:
            payload["lead"] = lead
        if fields:
            payload["fields"] = fields
        return json.dumps(payload, default=str)


def configure_logging() -> None:
    root_logger = logging.getLogger()
    if getattr(root_logger, "_leadflow_configured", False):
        return

    level = logging.getLevelName(get_settings().log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonLogFormatter())

    root_logger.handlers.clear()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)
    logging.setLogRecordFactory(_record_factory)
    root_logger._leadflow_configured = True  # type: ignore[attr-defined]
