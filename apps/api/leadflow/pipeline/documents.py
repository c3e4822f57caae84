from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from leadflow.core.config import get_settings
from leadflow.errors import AuthorizationError
from leadflow.pipeline.access import load_lead
from leadflow.pipeline.models import DocumentTypeMaster, LeadDocument
from leadflow.pipeline.resolver import resolve_document_type
from leadflow.pipeline.tags import DocumentTag
from leadflow.platform.storage.object_store import ObjectStore


def document_urls(
    session: Session,
    object_store: ObjectStore,
    *,
    vendor_id: int,
    lead_id: int,
    tag: DocumentTag | str,
    disposition: str = "inline",
) -> list[dict[str, object]]:
    """Signed retrieval URLs for a lead's documents of one type."""
    load_lead(session, vendor_id, lead_id)
    doc_type_id = resolve_document_type(session, vendor_id, tag)
    rows = session.execute(
        select(LeadDocument, DocumentTypeMaster.vendor_id)
        .join(DocumentTypeMaster, DocumentTypeMaster.id == LeadDocument.doc_type_id)
        .where(
            LeadDocument.lead_id == lead_id,
            LeadDocument.doc_type_id == doc_type_id,
            LeadDocument.is_deleted.is_(False),
        )
        .order_by(LeadDocument.created_at.asc(), LeadDocument.id.asc())
    ).all()

    ttl = get_settings().signed_url_ttl_seconds
    urls: list[dict[str, object]] = []
    for document, type_vendor_id in rows:
        if document.vendor_id != vendor_id or type_vendor_id != vendor_id:
            raise AuthorizationError(f"document {document.id} does not belong to vendor {vendor_id}")
        urls.append(
            {
                "id": document.id,
                "doc_og_name": document.doc_og_name,
                "tech_check_status": document.tech_check_status,
                "created_at": document.created_at.isoformat(),
                "signed_url": object_store.sign(document.doc_sys_name, ttl, disposition),
            }
        )
    return urls
