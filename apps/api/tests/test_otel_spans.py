from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from sqlalchemy.orm import Session

from leadflow.errors import ValidationError
from leadflow.otel import setup_inmemory_otel
from leadflow.pipeline.executor import StageTransitionExecutor
from leadflow.pipeline.models import Lead
from leadflow.platform.storage.object_store import LocalObjectStore


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel()
    exporter.clear()
    return exporter


def test_transition_span_carries_stage_and_lead(
    db_session: Session,
    seeded,
    make_lead: Callable[..., Lead],
    span_exporter: InMemorySpanExporter,
    tmp_path: Path,
) -> None:
    lead = make_lead(status_id=107)
    executor = StageTransitionExecutor(object_store=LocalObjectStore(tmp_path))

    executor.execute(
        db_session,
        stage="request-tech-check",
        vendor_id=1,
        lead_id=lead.id,
        user_id=seeded.sales_id,
        payload={"assign_to": seeded.admin_id},
    )

    spans = [span for span in span_exporter.get_finished_spans() if span.name == "leadflow.transition"]
    assert spans
    assert spans[-1].attributes["stage"] == "request-tech-check"
    assert spans[-1].attributes["lead_id"] == lead.id


def test_rejected_transition_marks_span_as_error(
    db_session: Session,
    seeded,
    make_lead: Callable[..., Lead],
    span_exporter: InMemorySpanExporter,
    tmp_path: Path,
) -> None:
    lead = make_lead()
    executor = StageTransitionExecutor(object_store=LocalObjectStore(tmp_path))

    with pytest.raises(ValidationError):
        executor.execute(db_session, stage="booking", vendor_id=1, lead_id=lead.id, user_id=1, payload={})

    spans = [span for span in span_exporter.get_finished_spans() if span.name == "leadflow.transition"]
    assert spans
    assert spans[-1].status.status_code == StatusCode.ERROR
