from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from leadflow.pipeline.access import load_lead
from leadflow.pipeline.models import DocumentTypeMaster, LeadDocument, OrderLoginItem, SiteReadinessItem, UserLeadTask
from leadflow.pipeline.resolver import find_document_type_id
from leadflow.pipeline.schemas import ReadinessReport
from leadflow.pipeline.tags import (
    FINAL_HANDOVER_DOCUMENTS,
    ORDER_LOGIN_REQUIRED_ITEMS,
    PENDING_WORK_TASK,
    POST_PRODUCTION_DOCUMENTS,
    SITE_READINESS_ITEMS,
    DocumentTag,
)

DISPATCH_REQUIRED_FIELDS: dict[str, str] = {
    "required_date_for_dispatch": "Required Date for Dispatch",
    "onsite_contact_person_name": "Onsite Contact Person Name",
    "onsite_contact_person_number": "Onsite Contact Person Number",
    "material_lift_availability": "Material Lift Availability",
}


def _count_documents(session: Session, vendor_id: int, lead_id: int, doc_type_id: int | None) -> int:
    if doc_type_id is None:
        return 0
    return (
        session.scalar(
            select(func.count(LeadDocument.id)).where(
                LeadDocument.vendor_id == vendor_id,
                LeadDocument.lead_id == lead_id,
                LeadDocument.doc_type_id == doc_type_id,
                LeadDocument.is_deleted.is_(False),
            )
        )
        or 0
    )


def site_readiness(session: Session, vendor_id: int, lead_id: int) -> ReadinessReport:
    """Gate for moving from site readiness to dispatch planning."""
    load_lead(session, vendor_id, lead_id)
    doc_type_id = find_document_type_id(session, vendor_id, DocumentTag.SITE_READINESS_PHOTO)
    photo_count = _count_documents(session, vendor_id, lead_id, doc_type_id)
    item_count = (
        session.scalar(
            select(func.count(SiteReadinessItem.id)).where(
                SiteReadinessItem.vendor_id == vendor_id,
                SiteReadinessItem.lead_id == lead_id,
            )
        )
        or 0
    )
    has_current_site_photo = photo_count > 0
    has_all_items = item_count >= len(SITE_READINESS_ITEMS)
    return ReadinessReport(
        ready=has_current_site_photo and has_all_items,
        reasons={
            "has_current_site_photo": has_current_site_photo,
            "has_all_items": has_all_items,
            "item_count": item_count,
            "expected_items": len(SITE_READINESS_ITEMS),
        },
    )


def dispatch_info(session: Session, vendor_id: int, lead_id: int) -> ReadinessReport:
    lead = load_lead(session, vendor_id, lead_id)
    missing = []
    for attribute, label in DISPATCH_REQUIRED_FIELDS.items():
        value = getattr(lead, attribute)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(label)
    return ReadinessReport(ready=not missing, reasons={"missing_fields": missing})


def _documents_present(
    session: Session, vendor_id: int, lead_id: int, tags: tuple[DocumentTag, ...]
) -> dict[str, bool]:
    rows = session.execute(
        select(DocumentTypeMaster.tag, func.count(LeadDocument.id))
        .join(LeadDocument, LeadDocument.doc_type_id == DocumentTypeMaster.id)
        .where(
            DocumentTypeMaster.vendor_id == vendor_id,
            DocumentTypeMaster.tag.in_([str(tag) for tag in tags]),
            LeadDocument.lead_id == lead_id,
            LeadDocument.is_deleted.is_(False),
        )
        .group_by(DocumentTypeMaster.tag)
    ).all()
    present = {tag for tag, count in rows if count}
    return {str(tag): str(tag) in present for tag in tags}


def production(session: Session, vendor_id: int, lead_id: int) -> ReadinessReport:
    """Gate for moving from order login to production."""
    load_lead(session, vendor_id, lead_id)
    logged = set(
        session.scalars(
            select(OrderLoginItem.item_type).where(
                OrderLoginItem.vendor_id == vendor_id,
                OrderLoginItem.lead_id == lead_id,
                OrderLoginItem.item_type.in_(ORDER_LOGIN_REQUIRED_ITEMS),
            )
        ).all()
    )
    missing_items = [item for item in ORDER_LOGIN_REQUIRED_ITEMS if item not in logged]
    doc_type_id = find_document_type_id(session, vendor_id, DocumentTag.PRODUCTION_FILES)
    production_file_count = _count_documents(session, vendor_id, lead_id, doc_type_id)
    has_production_files = production_file_count > 0
    return ReadinessReport(
        ready=not missing_items and has_production_files,
        reasons={
            "missing_items": missing_items,
            "has_production_files": has_production_files,
            "production_file_count": production_file_count,
        },
    )


def post_production(session: Session, vendor_id: int, lead_id: int) -> ReadinessReport:
    """QC photos plus both packing uploads; packing remarks are reported but optional."""
    lead = load_lead(session, vendor_id, lead_id)
    documents = _documents_present(session, vendor_id, lead_id, POST_PRODUCTION_DOCUMENTS)
    return ReadinessReport(
        ready=all(documents.values()),
        reasons={
            "documents": documents,
            "hardware_packing_remark": lead.hardware_packing_details_remark,
            "woodwork_packing_remark": lead.woodwork_packing_details_remark,
        },
    )


def final_handover(session: Session, vendor_id: int, lead_id: int) -> ReadinessReport:
    load_lead(session, vendor_id, lead_id)
    documents = _documents_present(session, vendor_id, lead_id, FINAL_HANDOVER_DOCUMENTS)

    open_pending_work = (
        session.scalar(
            select(func.count(UserLeadTask.id)).where(
                UserLeadTask.vendor_id == vendor_id,
                UserLeadTask.lead_id == lead_id,
                func.lower(UserLeadTask.task_type) == PENDING_WORK_TASK.lower(),
                UserLeadTask.status.not_in(("completed", "cancelled")),
            )
        )
        or 0
    )
    docs_complete = all(documents.values())
    pending_tasks_clear = open_pending_work == 0
    return ReadinessReport(
        ready=docs_complete and pending_tasks_clear,
        reasons={
            "documents": documents,
            "docs_complete": docs_complete,
            "pending_tasks_clear": pending_tasks_clear,
            "open_pending_work_tasks": open_pending_work,
        },
    )


def project_paid(session: Session, vendor_id: int, lead_id: int) -> ReadinessReport:
    lead = load_lead(session, vendor_id, lead_id)
    total = lead.total_project_amount
    pending = lead.pending_amount
    has_total = total is not None and total > 0
    fully_paid = pending is not None and pending <= Decimal("0")
    return ReadinessReport(
        ready=has_total and fully_paid,
        reasons={
            "has_total_project_amount": has_total,
            "fully_paid": fully_paid,
            "pending_amount": str(pending) if pending is not None else None,
        },
    )
