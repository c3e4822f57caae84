from __future__ import annotations

import json
import logging

from leadflow.logging import JsonLogFormatter
from leadflow.middleware.correlation_id import resolve_correlation_id


def _record(**extra: object) -> logging.LogRecord:
    record = logging.makeLogRecord({"name": "leadflow.transitions", "levelname": "INFO", "msg": "transition.completed"})
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_groups_lead_context_and_event_fields() -> None:
    line = JsonLogFormatter().format(
        _record(correlation_id="corr-1", vendor_id=1, lead_id=7, stage="booking", document_count=2, secret="x")
    )

    payload = json.loads(line)
    assert payload["event"] == "transition.completed"
    assert payload["correlation_id"] == "corr-1"
    assert payload["lead"] == {"vendor_id": 1, "lead_id": 7, "stage": "booking"}
    assert payload["fields"] == {"document_count": 2}


def test_formatter_truncates_long_errors() -> None:
    payload = json.loads(JsonLogFormatter().format(_record(error="e" * 900)))

    assert len(payload["fields"]["error"]) == 500
    assert "lead" not in payload


def test_correlation_id_keeps_safe_values_and_replaces_others() -> None:
    assert resolve_correlation_id("abc-123") == "abc-123"
    assert resolve_correlation_id(None) != resolve_correlation_id(None)
    replaced = resolve_correlation_id("bad id\nwith newline")
    assert replaced != "bad id\nwith newline"
    assert len(replaced) == 32
