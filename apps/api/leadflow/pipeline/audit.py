from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime

from sqlalchemy.orm import Session

from leadflow.pipeline.models import (
    Lead,
    LeadActivityStatusLog,
    LeadDetailedLog,
    LeadDocument,
    LeadDocumentLog,
    LeadStatusLog,
)


def pluralize(count: int, singular: str, plural: str | None = None) -> str:
    word = singular if count == 1 else (plural or f"{singular}s")
    return f"{count} {word}"


def remark_suffix(remark: str | None) -> str:
    cleaned = (remark or "").strip()
    return f"Remark: {cleaned.rstrip('.')}." if cleaned else "No remark provided."


def compose_message(
    action: str,
    counts: Mapping[tuple[str, str], int] | None = None,
    remark: str | None = None,
    *,
    verb: str = "uploaded",
) -> str:
    """Single human-readable audit line: action, uploaded counts, then the remark."""
    parts = [action.rstrip(".")]
    uploaded = [pluralize(count, singular, plural) for (singular, plural), count in (counts or {}).items() if count]
    if uploaded:
        parts[0] = f"{parts[0]} with {', '.join(uploaded)} {verb}"
    return f"{parts[0]}. {remark_suffix(remark)}"


def format_due_date(value: datetime) -> str:
    return value.strftime("%d %b %Y")


def write_detailed_log(session: Session, lead: Lead, action: str, action_type: str, user_id: int) -> LeadDetailedLog:
    log = LeadDetailedLog(
        vendor_id=lead.vendor_id,
        lead_id=lead.id,
        account_id=lead.account_id,
        action=action,
        action_type=action_type,
        created_by=user_id,
    )
    session.add(log)
    session.flush()
    return log


def link_documents(
    session: Session,
    log: LeadDetailedLog,
    documents: Iterable[LeadDocument],
    user_id: int,
) -> list[LeadDocumentLog]:
    links = [
        LeadDocumentLog(
            vendor_id=log.vendor_id,
            lead_id=log.lead_id,
            account_id=log.account_id,
            doc_id=document.id,
            lead_logs_id=log.id,
            created_by=user_id,
        )
        for document in documents
    ]
    session.add_all(links)
    session.flush()
    return links


def write_status_change(session: Session, lead: Lead, status_id: int, user_id: int) -> LeadStatusLog:
    lead.status_id = status_id
    lead.updated_by = user_id
    entry = LeadStatusLog(
        vendor_id=lead.vendor_id,
        lead_id=lead.id,
        account_id=lead.account_id,
        status_id=status_id,
        created_by=user_id,
    )
    session.add(entry)
    session.flush()
    return entry


def write_activity_status(
    session: Session,
    lead: Lead,
    activity_status: str,
    remark: str,
    user_id: int,
) -> LeadActivityStatusLog:
    lead.activity_status = activity_status
    lead.activity_status_remark = remark
    lead.updated_by = user_id
    entry = LeadActivityStatusLog(
        vendor_id=lead.vendor_id,
        lead_id=lead.id,
        account_id=lead.account_id,
        user_id=user_id,
        activity_status=activity_status,
        activity_status_remark=remark,
        created_by=user_id,
    )
    session.add(entry)
    session.flush()
    return entry
