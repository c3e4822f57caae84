from __future__ import annotations

from sqlalchemy.orm import Session

from leadflow.errors import AuthorizationError, NotFoundError
from leadflow.pipeline.models import Lead, User


def load_lead(session: Session, vendor_id: int, lead_id: int, *, for_update: bool = False) -> Lead:
    lead = session.get(Lead, lead_id, with_for_update=for_update)
    if lead is None or lead.is_deleted:
        raise NotFoundError(f"lead {lead_id} not found")
    if lead.vendor_id != vendor_id:
        raise AuthorizationError(f"lead {lead_id} does not belong to vendor {vendor_id}")
    return lead


def load_vendor_user(session: Session, vendor_id: int, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"user {user_id} not found")
    if user.vendor_id != vendor_id:
        raise AuthorizationError(f"user {user_id} does not belong to vendor {vendor_id}")
    return user
