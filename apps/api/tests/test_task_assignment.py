from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from leadflow.errors import AuthorizationError, ConfigurationError, NotFoundError, ValidationError
from leadflow.pipeline.models import Lead, LeadDetailedLog, LeadStatusLog, StatusTypeMaster, UserLeadTask
from leadflow.pipeline.tasks import TaskService


DUE = datetime(2026, 10, 20, 9, 30, tzinfo=timezone.utc)


def test_follow_up_task_keeps_lead_stage(db_session: Session, seeded, make_lead: Callable[..., Lead]) -> None:
    lead = make_lead(status_id=104)
    service = TaskService()

    result = service.assign(
        db_session,
        vendor_id=1,
        lead_id=lead.id,
        created_by=seeded.admin_id,
        payload={"task_type": "Follow Up", "due_date": DUE.isoformat(), "user_id": seeded.sales_id},
    )

    assert result.data["status"] is None
    assert result.message == "Lead has been assigned to Sam Sales for Follow Up. Due Date: 20 Oct 2026. No remark provided."
    assert db_session.get(Lead, lead.id).status_id == 104
    assert db_session.scalars(select(LeadStatusLog)).all() == []
    task = db_session.scalar(select(UserLeadTask))
    assert task is not None
    assert task.status == "open"
    assert task.user_id == seeded.sales_id


def test_follow_up_for_a_stage_target_keeps_lead_stage(db_session: Session, seeded, make_lead: Callable[..., Lead]) -> None:
    lead = make_lead(status_id=111)

    result = TaskService().assign_for_stage(
        db_session,
        stage="site-readiness",
        vendor_id=1,
        lead_id=lead.id,
        created_by=seeded.admin_id,
        payload={"task_type": "follow up", "due_date": DUE.isoformat(), "user_id": seeded.sales_id},
    )

    assert result.data["status"] is None
    assert result.message.startswith("Lead has been assigned to Sam Sales for Follow Up.")
    assert db_session.get(Lead, lead.id).status_id == 111
    assert db_session.scalars(select(LeadStatusLog)).all() == []


def test_stage_task_moves_lead_and_logs(db_session: Session, seeded, make_lead: Callable[..., Lead]) -> None:
    lead = make_lead(status_id=111)
    service = TaskService()

    result = service.assign_for_stage(
        db_session,
        stage="site-readiness",
        vendor_id=1,
        lead_id=lead.id,
        created_by=seeded.admin_id,
        payload={
            "task_type": "Site Readiness",
            "due_date": DUE.isoformat(),
            "user_id": seeded.supervisor_id,
            "remark": "check plumbing",
        },
    )

    assert result.data["status"] == {"from": 111, "to": 112}
    assert result.data["lead"] == {"id": lead.id, "status_id": 112}
    assert result.message == (
        "Lead has been assigned to Sid Supervisor for Site Readiness. Due Date: 20 Oct 2026. Remark: check plumbing."
    )
    log = db_session.scalar(select(LeadDetailedLog))
    assert log is not None
    assert log.action_type == "task-assign"
    assert log.action == result.message


def test_repeated_assignment_creates_another_task(db_session: Session, seeded, make_lead: Callable[..., Lead]) -> None:
    lead = make_lead(status_id=104)
    service = TaskService()
    payload = {"task_type": "Final Measurement", "due_date": DUE.isoformat(), "user_id": seeded.sales_id}

    service.assign_for_stage(db_session, stage="final-measurement", vendor_id=1, lead_id=lead.id, created_by=1, payload=payload)
    service.assign_for_stage(db_session, stage="final-measurement", vendor_id=1, lead_id=lead.id, created_by=1, payload=payload)

    assert len(db_session.scalars(select(UserLeadTask)).all()) == 2
    assert len(db_session.scalars(select(LeadStatusLog)).all()) == 2


def test_cross_vendor_assignee_is_rejected(db_session: Session, seeded, make_lead: Callable[..., Lead]) -> None:
    lead = make_lead()

    with pytest.raises(AuthorizationError):
        TaskService().assign(
            db_session,
            vendor_id=1,
            lead_id=lead.id,
            created_by=seeded.admin_id,
            payload={"task_type": "Follow Up", "due_date": DUE.isoformat(), "user_id": seeded.outsider_id},
        )
    assert db_session.scalars(select(UserLeadTask)).all() == []


def test_non_follow_up_without_stage_is_rejected(db_session: Session, seeded, make_lead: Callable[..., Lead]) -> None:
    lead = make_lead()

    with pytest.raises(ValidationError):
        TaskService().assign(
            db_session,
            vendor_id=1,
            lead_id=lead.id,
            created_by=seeded.admin_id,
            payload={"task_type": "Dispatch", "due_date": DUE.isoformat(), "user_id": seeded.sales_id},
        )


def test_unknown_task_stage_is_rejected(db_session: Session, seeded, make_lead: Callable[..., Lead]) -> None:
    lead = make_lead()

    with pytest.raises(ValidationError):
        TaskService().assign_for_stage(
            db_session,
            stage="moon-landing",
            vendor_id=1,
            lead_id=lead.id,
            created_by=1,
            payload={"task_type": "Other", "due_date": DUE.isoformat(), "user_id": seeded.sales_id},
        )


def test_missing_target_status_rolls_back_task(db_session: Session, seeded, make_lead: Callable[..., Lead]) -> None:
    lead = make_lead()
    db_session.delete(db_session.get(StatusTypeMaster, 115))
    db_session.commit()

    with pytest.raises(ConfigurationError):
        TaskService().assign_for_stage(
            db_session,
            stage="under-installation",
            vendor_id=1,
            lead_id=lead.id,
            created_by=1,
            payload={"task_type": "Installation", "due_date": DUE.isoformat(), "user_id": seeded.sales_id},
        )
    assert db_session.scalars(select(UserLeadTask)).all() == []


def test_list_and_complete_open_tasks(db_session: Session, seeded, make_lead: Callable[..., Lead]) -> None:
    lead = make_lead()
    service = TaskService()
    service.assign(
        db_session,
        vendor_id=1,
        lead_id=lead.id,
        created_by=1,
        payload={"task_type": "Follow Up", "due_date": DUE.isoformat(), "user_id": seeded.sales_id},
    )

    open_tasks = service.list_open_tasks(db_session, vendor_id=1, user_id=seeded.sales_id)
    assert [task.task_type for task in open_tasks] == ["Follow Up"]

    closed = service.complete_task(db_session, vendor_id=1, task_id=open_tasks[0].id, user_id=seeded.sales_id)
    assert closed.status == "completed"
    assert closed.closed_by == seeded.sales_id
    assert service.list_open_tasks(db_session, vendor_id=1, user_id=seeded.sales_id) == []

    with pytest.raises(ValidationError):
        service.complete_task(db_session, vendor_id=1, task_id=closed.id, user_id=seeded.sales_id)
    with pytest.raises(NotFoundError):
        service.complete_task(db_session, vendor_id=2, task_id=closed.id, user_id=seeded.outsider_id)
