from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from leadflow.errors import LeadflowError, NotFoundError, ValidationError
from leadflow.pipeline.access import load_lead, load_vendor_user
from leadflow.pipeline.audit import format_due_date, remark_suffix, write_detailed_log, write_status_change
from leadflow.pipeline.models import Lead, UserLeadTask
from leadflow.pipeline.resolver import resolve_status
from leadflow.pipeline.schemas import TaskAssignRequest, TaskRead, TransitionResult, parse_payload
from leadflow.pipeline.tags import FOLLOW_UP_TASK, STATUS_LABELS, StatusTag

logger = logging.getLogger("leadflow.tasks")

# Stage-specific assignment endpoints and the stage each one advances the lead to.
TASK_TARGETS: dict[str, StatusTag] = {
    "final-measurement": StatusTag.FINAL_MEASUREMENT,
    "client-documentation": StatusTag.CLIENT_DOCUMENTATION,
    "site-readiness": StatusTag.SITE_READINESS,
    "dispatch-planning": StatusTag.DISPATCH_PLANNING,
    "under-installation": StatusTag.UNDER_INSTALLATION,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_follow_up(task_type: str) -> bool:
    return task_type.strip().lower() == FOLLOW_UP_TASK.lower()


def create_task(
    session: Session,
    lead: Lead,
    *,
    assignee_id: int,
    task_type: str,
    due_date: datetime,
    remark: str | None,
    created_by: int,
) -> UserLeadTask:
    task = UserLeadTask(
        vendor_id=lead.vendor_id,
        lead_id=lead.id,
        account_id=lead.account_id,
        user_id=assignee_id,
        task_type=task_type,
        due_date=due_date,
        remark=remark,
        status="open",
        created_by=created_by,
    )
    session.add(task)
    session.flush()
    return task


@dataclass(slots=True)
class TaskService:
    def assign(
        self,
        session: Session,
        *,
        vendor_id: int,
        lead_id: int,
        created_by: int,
        payload: TaskAssignRequest | dict[str, Any],
        target_tag: StatusTag | None = None,
    ) -> TransitionResult:
        """Create an open task and, unless it is a Follow Up, advance the lead to `target_tag`.

        Repeating the call creates another task and writes another status log.
        """
        request = parse_payload(TaskAssignRequest, payload)
        follow_up = is_follow_up(request.task_type)
        if not follow_up and target_tag is None:
            raise ValidationError(f"task type '{request.task_type}' needs a target stage")

        try:
            lead = load_lead(session, vendor_id, lead_id, for_update=True)
            assignee = load_vendor_user(session, vendor_id, request.user_id)
            load_vendor_user(session, vendor_id, created_by)

            task = create_task(
                session,
                lead,
                assignee_id=assignee.id,
                task_type=request.task_type,
                due_date=request.due_date,
                remark=request.remark,
                created_by=created_by,
            )

            status_change: dict[str, int | None] | None = None
            if follow_up or target_tag is None:
                label = FOLLOW_UP_TASK
            else:
                status_id = resolve_status(session, vendor_id, target_tag)
                status_change = {"from": lead.status_id, "to": status_id}
                write_status_change(session, lead, status_id, created_by)
                label = STATUS_LABELS[target_tag]

            message = (
                f"Lead has been assigned to {assignee.user_name} for {label}. "
                f"Due Date: {format_due_date(request.due_date)}. {remark_suffix(request.remark)}"
            )
            log = write_detailed_log(session, lead, message, "task-assign", created_by)
            session.commit()
        except LeadflowError:
            session.rollback()
            raise

        logger.info(
            "task.assigned",
            extra={
                "vendor_id": vendor_id,
                "lead_id": lead.id,
                "task_id": task.id,
                "task_type": task.task_type,
                "user_id": assignee.id,
            },
        )
        return TransitionResult(
            message=message,
            data={
                "task": TaskRead.model_validate(task).model_dump(mode="json"),
                "lead": {"id": lead.id, "status_id": lead.status_id},
                "status": status_change,
                "log_id": log.id,
            },
        )

    def assign_for_stage(
        self,
        session: Session,
        *,
        stage: str,
        vendor_id: int,
        lead_id: int,
        created_by: int,
        payload: TaskAssignRequest | dict[str, Any],
    ) -> TransitionResult:
        try:
            target_tag = TASK_TARGETS[stage]
        except KeyError:
            raise ValidationError(f"no task assignment defined for stage '{stage}'") from None
        return self.assign(
            session,
            vendor_id=vendor_id,
            lead_id=lead_id,
            created_by=created_by,
            payload=payload,
            target_tag=target_tag,
        )

    def list_open_tasks(self, session: Session, *, vendor_id: int, user_id: int) -> list[TaskRead]:
        rows = session.scalars(
            select(UserLeadTask)
            .where(
                UserLeadTask.vendor_id == vendor_id,
                UserLeadTask.user_id == user_id,
                UserLeadTask.status == "open",
            )
            .order_by(UserLeadTask.due_date.asc(), UserLeadTask.id.asc())
        ).all()
        return [TaskRead.model_validate(row) for row in rows]

    def complete_task(
        self,
        session: Session,
        *,
        vendor_id: int,
        task_id: int,
        user_id: int,
        status: str = "completed",
    ) -> TaskRead:
        if status not in {"completed", "cancelled"}:
            raise ValidationError("status must be completed or cancelled")
        task = session.get(UserLeadTask, task_id)
        if task is None or task.vendor_id != vendor_id:
            raise NotFoundError(f"task {task_id} not found")
        if task.status != "open":
            raise ValidationError(f"task {task_id} is already {task.status}")

        task.status = status
        task.closed_by = user_id
        task.closed_at = utcnow()
        session.commit()
        session.refresh(task)
        logger.info(
            "task.closed",
            extra={"vendor_id": vendor_id, "lead_id": task.lead_id, "task_id": task.id, "task_type": task.task_type},
        )
        return TaskRead.model_validate(task)


task_service = TaskService()
