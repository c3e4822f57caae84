from __future__ import annotations

import logging

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import Session

from leadflow.pipeline.models import Lead, LeadUserMapping, UserLeadTask
from leadflow.pipeline.resolver import resolve_status
from leadflow.pipeline.roles import classify
from leadflow.pipeline.schemas import LeadListItem, StageListResponse
from leadflow.pipeline.tags import ACTIVE_ACTIVITY_STATUSES, StatusTag

logger = logging.getLogger("leadflow.visibility")

MAX_PAGE_SIZE = 100


def visible_lead_ids(session: Session, vendor_id: int, user_id: int) -> set[int]:
    """Leads a scoped user may see: active mappings plus any lead they created or hold a task on."""
    mapped = session.scalars(
        select(LeadUserMapping.lead_id).where(
            LeadUserMapping.vendor_id == vendor_id,
            LeadUserMapping.user_id == user_id,
            LeadUserMapping.status == "active",
        )
    ).all()
    tasked = session.scalars(
        select(UserLeadTask.lead_id).where(
            UserLeadTask.vendor_id == vendor_id,
            or_(UserLeadTask.user_id == user_id, UserLeadTask.created_by == user_id),
        )
    ).all()
    return set(mapped) | set(tasked)


def scope_lead_query(
    session: Session,
    stmt: Select,
    vendor_id: int,
    user_id: int,
) -> Select | None:
    """Restrict a lead query to what the caller may see. None means nothing is visible."""
    role = classify(session, user_id)
    if role.is_admin:
        return stmt
    lead_ids = visible_lead_ids(session, vendor_id, user_id)
    if not lead_ids:
        return None
    return stmt.where(Lead.id.in_(lead_ids))


def list_stage_leads(
    session: Session,
    vendor_id: int,
    user_id: int,
    tag: StatusTag | str,
    page: int = 1,
    limit: int = 10,
) -> StageListResponse:
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    status_id = resolve_status(session, vendor_id, tag)

    base = select(Lead).where(
        Lead.vendor_id == vendor_id,
        Lead.status_id == status_id,
        Lead.is_deleted.is_(False),
        Lead.activity_status.in_(ACTIVE_ACTIVITY_STATUSES),
    )
    scoped = scope_lead_query(session, base, vendor_id, user_id)
    if scoped is None:
        logger.info("visibility.empty", extra={"vendor_id": vendor_id, "user_id": user_id, "status_tag": str(tag)})
        return StageListResponse(total=0, page=page, limit=limit, data=[])

    total = session.scalar(select(func.count()).select_from(scoped.subquery())) or 0
    rows = session.scalars(
        scoped.order_by(Lead.created_at.desc(), Lead.id.desc()).offset((page - 1) * limit).limit(limit)
    ).all()
    return StageListResponse(
        total=total,
        page=page,
        limit=limit,
        data=[LeadListItem.model_validate(row) for row in rows],
    )
