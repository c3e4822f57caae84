from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from leadflow.dashboard.service import DashboardService, average_stage_duration, duration_breakdown
from leadflow.pipeline.audit import write_status_change
from leadflow.pipeline.executor import StageTransitionExecutor
from leadflow.pipeline.models import Lead, UserLeadTask
from leadflow.pipeline.schemas import UploadedFile
from leadflow.platform.cache.backend import InMemoryCacheBackend
from leadflow.platform.storage.object_store import LocalObjectStore


NOW = datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc)


@pytest.fixture()
def cache() -> InMemoryCacheBackend:
    return InMemoryCacheBackend()


def _task(session: Session, lead: Lead, user_id: int, due: datetime, status: str = "open") -> None:
    session.add(
        UserLeadTask(
            vendor_id=1,
            lead_id=lead.id,
            user_id=user_id,
            task_type="Follow Up",
            due_date=due,
            status=status,
            created_by=1,
        )
    )
    session.commit()


def test_duration_breakdown() -> None:
    assert duration_breakdown(36 * 3600) == {"days": 1, "hours": 12, "minutes": 0}
    assert duration_breakdown(90) == {"days": 0, "hours": 0, "minutes": 2}


def test_average_stage_duration_uses_first_boundaries_only() -> None:
    start = datetime(2026, 10, 1, tzinfo=timezone.utc)
    rows = [
        (1, 101, start),
        (1, 104, start + timedelta(days=2)),
        (1, 104, start + timedelta(days=9)),
        (2, 101, start),
        (2, 104, start + timedelta(days=1)),
        (3, 101, start),
        (4, 104, start),
    ]

    result = average_stage_duration(rows, 101, 104)

    assert result == {"average_days": 1.5, "days": 1, "hours": 12, "minutes": 0, "leads_counted": 2}
    assert average_stage_duration([], 101, 104)["leads_counted"] == 0


def test_task_stats_buckets_by_due_date(
    db_session: Session, seeded, make_lead: Callable[..., Lead], cache: InMemoryCacheBackend
) -> None:
    lead = make_lead()
    _task(db_session, lead, seeded.sales_id, NOW + timedelta(hours=5))
    _task(db_session, lead, seeded.sales_id, NOW + timedelta(days=2))
    _task(db_session, lead, seeded.sales_id, NOW - timedelta(days=3))
    _task(db_session, lead, seeded.sales_id, NOW - timedelta(days=3), status="completed")
    _task(db_session, lead, seeded.supervisor_id, NOW)

    service = DashboardService(cache=cache, now=lambda: NOW)
    stats = service.task_stats(db_session, vendor_id=1, user_id=seeded.sales_id)

    assert stats == {"today": 1, "upcoming": 1, "overdue": 1}


def test_task_stats_are_served_from_cache_until_expiry(
    db_session: Session, seeded, make_lead: Callable[..., Lead]
) -> None:
    ticks = {"now": 0.0}
    cache = InMemoryCacheBackend(clock=lambda: ticks["now"])
    service = DashboardService(cache=cache, now=lambda: NOW)
    lead = make_lead()

    assert service.task_stats(db_session, vendor_id=1, user_id=seeded.sales_id)["today"] == 0
    _task(db_session, lead, seeded.sales_id, NOW + timedelta(hours=1))
    assert service.task_stats(db_session, vendor_id=1, user_id=seeded.sales_id)["today"] == 0

    ticks["now"] = 301.0
    assert service.task_stats(db_session, vendor_id=1, user_id=seeded.sales_id)["today"] == 1


def test_status_counts_admin_and_scoped(
    db_session: Session, seeded, make_lead: Callable[..., Lead], cache: InMemoryCacheBackend
) -> None:
    make_lead(status_id=104, assign_to=seeded.sales_id)
    make_lead(status_id=104)
    make_lead(status_id=101)
    make_lead(status_id=101, activity_status="lost")

    service = DashboardService(cache=cache, now=lambda: NOW)
    overall = service.status_counts(db_session, vendor_id=1)
    assert overall["total_leads"] == 3
    assert overall["stages"]["booking-stage"] == 2
    assert overall["stages"]["open"] == 1
    assert overall["total_my_tasks"] is None

    mine = service.status_counts(db_session, vendor_id=1, user_id=seeded.sales_id)
    assert mine["total_leads"] == 1
    assert mine["stages"]["booking-stage"] == 1
    assert mine["total_my_tasks"] == 0

    nobody = service.status_counts(db_session, vendor_id=1, user_id=seeded.supervisor_id)
    assert nobody["total_leads"] == 0
    assert set(nobody["stages"].values()) == {0}


def test_bookings_and_stage_duration_follow_transitions(
    db_session: Session, seeded, make_lead: Callable[..., Lead], cache: InMemoryCacheBackend, tmp_path: Path
) -> None:
    lead = make_lead(status_id=None)
    write_status_change(db_session, lead, 101, seeded.admin_id)
    db_session.commit()
    StageTransitionExecutor(object_store=LocalObjectStore(tmp_path)).execute(
        db_session,
        stage="booking",
        vendor_id=1,
        lead_id=lead.id,
        user_id=seeded.admin_id,
        payload={"booking_amount": "50000", "total_project_amount": "200000"},
        files={"final_documents": [UploadedFile("plan.pdf", b"pdf")]},
    )

    service = DashboardService(cache=cache)
    bookings = service.bookings(db_session, vendor_id=1)
    assert bookings["today"] == {"count": 1, "value": "50000.00"}
    assert bookings["overall"] == {"count": 1, "value": "50000.00"}

    duration = service.stage_duration(db_session, vendor_id=1)
    assert duration["leads_counted"] == 1
    assert duration["days"] == 0

    scoped = service.bookings(db_session, vendor_id=1, user_id=seeded.supervisor_id)
    assert scoped["overall"] == {"count": 0, "value": "0.00"}


def test_performance_snapshot_and_activity_counts(
    db_session: Session, seeded, make_lead: Callable[..., Lead], cache: InMemoryCacheBackend
) -> None:
    make_lead(status_id=117, assign_to=seeded.sales_id)
    make_lead(status_id=104, assign_to=seeded.sales_id)
    make_lead(status_id=101, activity_status="onHold", assign_to=seeded.sales_id)
    make_lead(status_id=101)

    service = DashboardService(cache=cache, now=lambda: NOW)
    snapshot = service.performance_snapshot(db_session, vendor_id=1, user_id=seeded.sales_id)
    assert snapshot == {"total_leads_assigned": 3, "total_completed_leads": 1, "total_pending_leads": 2}

    overall = service.activity_status_counts(db_session, vendor_id=1)
    assert overall == {"total_on_going": 3, "open_on_going": 1, "on_hold": 1, "lost_approval": 0, "lost": 0}

    mine = service.activity_status_counts(db_session, vendor_id=1, user_id=seeded.sales_id)
    assert mine["total_on_going"] == 2
    assert mine["open_on_going"] == 0
    assert mine["on_hold"] == 1


def test_bookings_cache_lifetime_follows_settings(
    db_session: Session, seeded, make_lead: Callable[..., Lead], tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("BOOKINGS_TTL_SECONDS", "30")
    ticks = {"now": 0.0}
    service = DashboardService(cache=InMemoryCacheBackend(clock=lambda: ticks["now"]))
    lead = make_lead()

    assert service.bookings(db_session, vendor_id=1)["overall"]["count"] == 0
    StageTransitionExecutor(object_store=LocalObjectStore(tmp_path)).execute(
        db_session,
        stage="booking",
        vendor_id=1,
        lead_id=lead.id,
        user_id=seeded.admin_id,
        payload={"booking_amount": "50000"},
        files={"final_documents": [UploadedFile("plan.pdf", b"pdf")]},
    )
    assert service.bookings(db_session, vendor_id=1)["overall"]["count"] == 0

    ticks["now"] = 31.0
    assert service.bookings(db_session, vendor_id=1)["overall"] == {"count": 1, "value": "50000.00"}
