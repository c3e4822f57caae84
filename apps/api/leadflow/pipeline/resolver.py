from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from leadflow.errors import ConfigurationError
from leadflow.metrics import observe_configuration_error
from leadflow.pipeline.models import DocumentTypeMaster, PaymentTypeMaster, StatusTypeMaster
from leadflow.pipeline.tags import STATUS_TAG_VALUES, DocumentTag, PaymentTag, StatusTag


logger = logging.getLogger("leadflow.resolver")

_MASTERS = {
    "status": StatusTypeMaster,
    "document": DocumentTypeMaster,
    "payment": PaymentTypeMaster,
}


def _resolve(session: Session, kind: str, vendor_id: int, tag: str) -> int:
    model = _MASTERS[kind]
    row_id = session.scalar(select(model.id).where(model.vendor_id == vendor_id, model.tag == str(tag)))
    if row_id is None:
        observe_configuration_error(kind, str(tag))
        logger.warning("resolver.missing_tag", extra={"vendor_id": vendor_id, "status_tag": str(tag)})
        raise ConfigurationError(kind, str(tag), vendor_id)
    return row_id


def resolve_status(session: Session, vendor_id: int, tag: StatusTag | str) -> int:
    return _resolve(session, "status", vendor_id, tag)


def resolve_document_type(session: Session, vendor_id: int, tag: DocumentTag | str) -> int:
    return _resolve(session, "document", vendor_id, tag)


def resolve_payment_type(session: Session, vendor_id: int, tag: PaymentTag | str) -> int:
    return _resolve(session, "payment", vendor_id, tag)


def resolve_document_types(
    session: Session,
    vendor_id: int,
    tags: Iterable[DocumentTag | str],
) -> dict[str, int]:
    """Resolve several document tags, failing on the first one the vendor lacks."""
    wanted = list(dict.fromkeys(str(tag) for tag in tags))
    if not wanted:
        return {}
    rows = session.execute(
        select(DocumentTypeMaster.tag, DocumentTypeMaster.id).where(
            DocumentTypeMaster.vendor_id == vendor_id,
            DocumentTypeMaster.tag.in_(wanted),
        )
    ).all()
    found = {tag: row_id for tag, row_id in rows}
    for tag in wanted:
        if tag not in found:
            observe_configuration_error("document", tag)
            logger.warning("resolver.missing_tag", extra={"vendor_id": vendor_id, "status_tag": tag})
            raise ConfigurationError("document", tag, vendor_id)
    return found


def find_status_id(session: Session, vendor_id: int, tag: StatusTag | str) -> int | None:
    """Lookup that tolerates a missing row, for read-only aggregates."""
    return session.scalar(
        select(StatusTypeMaster.id).where(StatusTypeMaster.vendor_id == vendor_id, StatusTypeMaster.tag == str(tag))
    )


def find_document_type_id(session: Session, vendor_id: int, tag: DocumentTag | str) -> int | None:
    return session.scalar(
        select(DocumentTypeMaster.id).where(
            DocumentTypeMaster.vendor_id == vendor_id,
            DocumentTypeMaster.tag == str(tag),
        )
    )


def find_status_tag(session: Session, vendor_id: int, status_id: int) -> StatusTag | None:
    """Reverse lookup from a vendor-local status id to its tag; None for unknown or custom tags."""
    tag = session.scalar(
        select(StatusTypeMaster.tag).where(StatusTypeMaster.vendor_id == vendor_id, StatusTypeMaster.id == status_id)
    )
    if tag is None or tag not in STATUS_TAG_VALUES:
        return None
    return StatusTag(tag)
