from __future__ import annotations

from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leadflow.core.config import get_settings
from leadflow.core.database import Base
from leadflow.pipeline.models import (
    DocumentTypeMaster,
    Lead,
    LeadUserMapping,
    PaymentTypeMaster,
    StatusTypeMaster,
    User,
    UserType,
    Vendor,
)
from leadflow.pipeline.tags import STATUS_LABELS, STATUS_SLUGS, DocumentTag, PaymentTag, StatusTag


@dataclass
class SeededVendor:
    vendor_id: int
    other_vendor_id: int
    admin_id: int
    sales_id: int
    supervisor_id: int
    outsider_id: int
    status_ids: dict[StatusTag, int] = field(default_factory=dict)
    document_type_ids: dict[DocumentTag, int] = field(default_factory=dict)
    payment_type_ids: dict[PaymentTag, int] = field(default_factory=dict)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_settings() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def seeded(db_session: Session) -> SeededVendor:
    """Vendor 1 is fully configured; vendor 2 has users but no tag masters.

    Status ids follow 100 + the number in the tag, so "Type 4" is 104.
    """
    db_session.add_all([Vendor(id=1, name="Interiors Co"), Vendor(id=2, name="Other Co")])
    db_session.add_all([UserType(id=1, user_type="admin"), UserType(id=2, user_type="sales")])
    db_session.flush()
    db_session.add_all(
        [
            User(id=1, vendor_id=1, user_type_id=1, user_name="Asha Admin"),
            User(id=2, vendor_id=1, user_type_id=2, user_name="Sam Sales"),
            User(id=3, vendor_id=1, user_type_id=2, user_name="Sid Supervisor"),
            User(id=4, vendor_id=2, user_type_id=2, user_name="Olga Outsider"),
        ]
    )
    db_session.flush()

    seed = SeededVendor(vendor_id=1, other_vendor_id=2, admin_id=1, sales_id=2, supervisor_id=3, outsider_id=4)
    for tag in StatusTag:
        row_id = 100 + int(tag.value.split()[-1])
        db_session.add(
            StatusTypeMaster(id=row_id, vendor_id=1, tag=tag.value, type=STATUS_SLUGS[tag], label=STATUS_LABELS[tag])
        )
        seed.status_ids[tag] = row_id
    for tag in DocumentTag:
        row_id = 200 + int(tag.value.split()[-1])
        db_session.add(DocumentTypeMaster(id=row_id, vendor_id=1, tag=tag.value, type=tag.name.lower()))
        seed.document_type_ids[tag] = row_id
    for tag in PaymentTag:
        row_id = 300 + int(tag.value.split()[-1])
        db_session.add(PaymentTypeMaster(id=row_id, vendor_id=1, tag=tag.value, type=tag.name.lower()))
        seed.payment_type_ids[tag] = row_id
    db_session.commit()
    return seed


@pytest.fixture()
def make_lead(db_session: Session) -> Callable[..., Lead]:
    def _make_lead(
        *,
        vendor_id: int = 1,
        created_by: int = 1,
        status_id: int | None = 101,
        assign_to: int | None = None,
        **fields: Any,
    ) -> Lead:
        lead = Lead(
            vendor_id=vendor_id,
            status_id=status_id,
            firstname=fields.pop("firstname", "Priya"),
            lastname=fields.pop("lastname", "Nair"),
            activity_status=fields.pop("activity_status", "onGoing"),
            created_by=created_by,
            **fields,
        )
        db_session.add(lead)
        db_session.flush()
        if assign_to is not None:
            db_session.add(
                LeadUserMapping(
                    vendor_id=vendor_id,
                    lead_id=lead.id,
                    user_id=assign_to,
                    type="lead",
                    status="active",
                    created_by=created_by,
                )
            )
        db_session.commit()
        return lead

    return _make_lead
