from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from leadflow.errors import LeadflowError, ValidationError
from leadflow.pipeline.access import load_lead, load_vendor_user
from leadflow.pipeline.audit import (
    format_due_date,
    remark_suffix,
    write_activity_status,
    write_detailed_log,
    write_status_change,
)
from leadflow.pipeline.executor import add_mapping
from leadflow.pipeline.models import Lead
from leadflow.pipeline.resolver import resolve_status
from leadflow.pipeline.schemas import (
    ActivityStatusRevert,
    ActivityStatusUpdate,
    LeadCreate,
    LeadListItem,
    TransitionResult,
    parse_payload,
)
from leadflow.pipeline.tags import FOLLOW_UP_TASK, StatusTag
from leadflow.pipeline.tasks import create_task

logger = logging.getLogger("leadflow.leads")


@dataclass(slots=True)
class LeadService:
    def create_lead(
        self,
        session: Session,
        *,
        vendor_id: int,
        user_id: int,
        payload: LeadCreate | dict[str, Any],
    ) -> TransitionResult:
        dto = parse_payload(LeadCreate, payload)
        try:
            load_vendor_user(session, vendor_id, user_id)
            if dto.assign_to is not None:
                load_vendor_user(session, vendor_id, dto.assign_to)
            open_status_id = resolve_status(session, vendor_id, StatusTag.OPEN)

            lead = Lead(
                vendor_id=vendor_id,
                account_id=dto.account_id,
                firstname=dto.firstname,
                lastname=dto.lastname,
                contact_no=dto.contact_no,
                email=dto.email,
                notes=dto.notes,
                activity_status="onGoing",
                created_by=user_id,
            )
            session.add(lead)
            session.flush()
            write_status_change(session, lead, open_status_id, user_id)

            mapping_id = None
            if dto.assign_to is not None:
                mapping_id = add_mapping(session, vendor_id, lead.id, lead.account_id, dto.assign_to, "lead", user_id).id

            name = " ".join(part for part in (dto.firstname, dto.lastname) if part)
            log = write_detailed_log(session, lead, f"Lead created for {name}.", "lead-create", user_id)
            session.commit()
        except LeadflowError:
            session.rollback()
            raise

        logger.info("lead.created", extra={"vendor_id": vendor_id, "lead_id": lead.id, "user_id": user_id})
        return TransitionResult(
            message="Lead created",
            data={
                "lead": LeadListItem.model_validate(lead).model_dump(mode="json"),
                "log_id": log.id,
                "mapping_id": mapping_id,
            },
        )

    def update_activity_status(
        self,
        session: Session,
        *,
        vendor_id: int,
        lead_id: int,
        user_id: int,
        payload: ActivityStatusUpdate | dict[str, Any],
    ) -> TransitionResult:
        dto = parse_payload(ActivityStatusUpdate, payload)
        try:
            lead = load_lead(session, vendor_id, lead_id, for_update=True)
            load_vendor_user(session, vendor_id, user_id)
            if lead.activity_status == dto.activity_status:
                raise ValidationError(f"lead {lead_id} is already {dto.activity_status}")

            remark = dto.remark.strip()
            entry = write_activity_status(session, lead, dto.activity_status, remark, user_id)
            task_id = None
            if dto.activity_status == "onHold" and dto.due_date is not None:
                task_id = create_task(
                    session,
                    lead,
                    assignee_id=user_id,
                    task_type=FOLLOW_UP_TASK,
                    due_date=dto.due_date,
                    remark=remark,
                    created_by=user_id,
                ).id
                message = (
                    f"Lead marked as onHold. Follow up due {format_due_date(dto.due_date)}. {remark_suffix(remark)}"
                )
            else:
                message = f"Lead marked as {dto.activity_status}. {remark_suffix(remark)}"
            log = write_detailed_log(session, lead, message, "activity-status", user_id)
            session.commit()
        except LeadflowError:
            session.rollback()
            raise

        logger.info("lead.activity_status", extra={"vendor_id": vendor_id, "lead_id": lead.id, "user_id": user_id})
        return TransitionResult(
            message=message,
            data={
                "lead_id": lead.id,
                "activity_status": lead.activity_status,
                "activity_log_id": entry.id,
                "log_id": log.id,
                "task_id": task_id,
            },
        )

    def revert_to_ongoing(
        self,
        session: Session,
        *,
        vendor_id: int,
        lead_id: int,
        user_id: int,
        payload: ActivityStatusRevert | dict[str, Any],
    ) -> TransitionResult:
        dto = parse_payload(ActivityStatusRevert, payload)
        try:
            lead = load_lead(session, vendor_id, lead_id, for_update=True)
            load_vendor_user(session, vendor_id, user_id)
            if lead.activity_status == "onGoing":
                raise ValidationError(f"lead {lead_id} is already onGoing")

            remark = dto.remark.strip()
            previous = lead.activity_status
            entry = write_activity_status(session, lead, "onGoing", remark, user_id)
            message = f"Lead reverted from {previous} to onGoing. {remark_suffix(remark)}"
            log = write_detailed_log(session, lead, message, "activity-status", user_id)
            session.commit()
        except LeadflowError:
            session.rollback()
            raise

        logger.info("lead.activity_status", extra={"vendor_id": vendor_id, "lead_id": lead.id, "user_id": user_id})
        return TransitionResult(
            message=message,
            data={
                "lead_id": lead.id,
                "activity_status": lead.activity_status,
                "activity_log_id": entry.id,
                "log_id": log.id,
            },
        )


lead_service = LeadService()
