from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from leadflow.errors import NotFoundError
from leadflow.pipeline.models import User, UserType

ADMIN_ROLES = frozenset({"admin", "super-admin"})


@dataclass(frozen=True, slots=True)
class RoleClassification:
    user_id: int
    vendor_id: int
    user_type: str
    is_admin: bool


def is_admin_role(user_type: str | None) -> bool:
    return (user_type or "").strip().lower() in ADMIN_ROLES


def classify(session: Session, user_id: int) -> RoleClassification:
    row = session.execute(
        select(User.id, User.vendor_id, UserType.user_type)
        .join(UserType, UserType.id == User.user_type_id)
        .where(User.id == user_id)
    ).first()
    if row is None:
        raise NotFoundError(f"user {user_id} not found")
    return RoleClassification(
        user_id=row.id,
        vendor_id=row.vendor_id,
        user_type=row.user_type,
        is_admin=is_admin_role(row.user_type),
    )
