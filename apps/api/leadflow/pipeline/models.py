from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leadflow.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Vendor(Base):
    __tablename__ = "vendor_master"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class UserType(Base):
    __tablename__ = "user_type_master"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_type: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)


class User(Base):
    __tablename__ = "user_master"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    user_type_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("user_type_master.id", ondelete="RESTRICT"),
        nullable=False,
    )
    user_name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    user_type: Mapped[UserType] = relationship("UserType")


class StatusTypeMaster(Base):
    __tablename__ = "status_type_master"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    tag: Mapped[str] = mapped_column(String(32), nullable=False)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (UniqueConstraint("vendor_id", "tag", name="uq_status_type_vendor_tag"),)


class DocumentTypeMaster(Base):
    __tablename__ = "document_type_master"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    tag: Mapped[str] = mapped_column(String(32), nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (UniqueConstraint("vendor_id", "tag", name="uq_document_type_vendor_tag"),)


class PaymentTypeMaster(Base):
    __tablename__ = "payment_type_master"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    tag: Mapped[str] = mapped_column(String(32), nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (UniqueConstraint("vendor_id", "tag", name="uq_payment_type_vendor_tag"),)


class Lead(Base):
    __tablename__ = "lead_master"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("status_type_master.id", ondelete="RESTRICT"),
        nullable=True,
    )
    activity_status: Mapped[str] = mapped_column(String(32), nullable=False, default="onGoing", server_default="onGoing")
    activity_status_remark: Mapped[str | None] = mapped_column(Text, nullable=True)
    firstname: Mapped[str] = mapped_column(Text, nullable=False)
    lastname: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_no: Mapped[str | None] = mapped_column(String(32), nullable=True)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    final_desc_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_project_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    booking_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    pending_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    client_required_order_login_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    required_date_for_dispatch: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    onsite_contact_person_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    onsite_contact_person_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    material_lift_availability: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    client_required_order_login_completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    hardware_packing_details_remark: Mapped[str | None] = mapped_column(Text, nullable=True)
    woodwork_packing_details_remark: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispatch_planning_remark: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_carcass_installation_completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    carcass_installation_completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_shutter_installation_completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    shutter_installation_completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_by: Mapped[int] = mapped_column(Integer, ForeignKey("user_master.id", ondelete="RESTRICT"), nullable=False)
    updated_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    status_type: Mapped[StatusTypeMaster | None] = relationship("StatusTypeMaster")

    __table_args__ = (
        CheckConstraint(
            "activity_status IN ('onGoing', 'onHold', 'lost', 'lostApproval')",
            name="ck_lead_activity_status",
        ),
        Index("ix_lead_vendor_status", "vendor_id", "status_id"),
    )


class LeadDocument(Base):
    __tablename__ = "lead_documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    lead_id: Mapped[int] = mapped_column(Integer, ForeignKey("lead_master.id", ondelete="RESTRICT"), nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    doc_type_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("document_type_master.id", ondelete="RESTRICT"),
        nullable=False,
    )
    doc_og_name: Mapped[str] = mapped_column(Text, nullable=False)
    doc_sys_name: Mapped[str] = mapped_column(Text, nullable=False)
    tech_check_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    document_type: Mapped[DocumentTypeMaster] = relationship("DocumentTypeMaster")

    __table_args__ = (Index("ix_lead_documents_lead", "vendor_id", "lead_id"),)


class PaymentInfo(Base):
    __tablename__ = "payment_info"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    lead_id: Mapped[int] = mapped_column(Integer, ForeignKey("lead_master.id", ondelete="RESTRICT"), nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payment_type_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payment_type_master.id", ondelete="RESTRICT"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    payment_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_file_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("lead_documents.id", ondelete="SET NULL"),
        nullable=True,
    )
    payment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    payment_type: Mapped[PaymentTypeMaster] = relationship("PaymentTypeMaster")


class LedgerEntry(Base):
    __tablename__ = "ledger"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    lead_id: Mapped[int] = mapped_column(Integer, ForeignKey("lead_master.id", ondelete="RESTRICT"), nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    payment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("type IN ('credit', 'debit')", name="ck_ledger_type"),
        CheckConstraint("amount >= 0", name="ck_ledger_amount_nonnegative"),
    )


class LeadUserMapping(Base):
    __tablename__ = "lead_user_mapping"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    lead_id: Mapped[int] = mapped_column(Integer, ForeignKey("lead_master.id", ondelete="RESTRICT"), nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("user_master.id", ondelete="RESTRICT"), nullable=False)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active", server_default="active")
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (Index("ix_lead_user_mapping_user", "vendor_id", "user_id", "status"),)


class UserLeadTask(Base):
    __tablename__ = "user_lead_task"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    lead_id: Mapped[int] = mapped_column(Integer, ForeignKey("lead_master.id", ondelete="RESTRICT"), nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("user_master.id", ondelete="RESTRICT"), nullable=False)
    task_type: Mapped[str] = mapped_column(String(64), nullable=False)
    due_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    remark: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open", server_default="open")
    closed_by: Mapped[int | None] = mapped_column(Integer, nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (
        CheckConstraint("status IN ('open', 'completed', 'cancelled')", name="ck_user_lead_task_status"),
        Index("ix_user_lead_task_user", "vendor_id", "user_id", "status"),
    )


class LeadDetailedLog(Base):
    __tablename__ = "lead_detailed_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    lead_id: Mapped[int] = mapped_column(Integer, ForeignKey("lead_master.id", ondelete="RESTRICT"), nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    action: Mapped[str] = mapped_column(Text, nullable=False)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class LeadDocumentLog(Base):
    __tablename__ = "lead_document_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    lead_id: Mapped[int] = mapped_column(Integer, ForeignKey("lead_master.id", ondelete="RESTRICT"), nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    doc_id: Mapped[int] = mapped_column(Integer, ForeignKey("lead_documents.id", ondelete="RESTRICT"), nullable=False)
    lead_logs_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("lead_detailed_logs.id", ondelete="RESTRICT"),
        nullable=False,
    )
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class LeadStatusLog(Base):
    __tablename__ = "lead_status_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    lead_id: Mapped[int] = mapped_column(Integer, ForeignKey("lead_master.id", ondelete="RESTRICT"), nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("status_type_master.id", ondelete="RESTRICT"),
        nullable=False,
    )
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (Index("ix_lead_status_logs_scan", "vendor_id", "status_id", "created_at"),)


class LeadActivityStatusLog(Base):
    __tablename__ = "lead_activity_status_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    lead_id: Mapped[int] = mapped_column(Integer, ForeignKey("lead_master.id", ondelete="RESTRICT"), nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    activity_status: Mapped[str] = mapped_column(String(32), nullable=False)
    activity_status_remark: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class SiteReadinessItem(Base):
    __tablename__ = "site_readiness"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    lead_id: Mapped[int] = mapped_column(Integer, ForeignKey("lead_master.id", ondelete="RESTRICT"), nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    value: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    remark: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (UniqueConstraint("lead_id", "type", name="uq_site_readiness_lead_item"),)


class OrderLoginItem(Base):
    """One order-login breakup line (Carcass, Shutter, ...) handed to the factory."""

    __tablename__ = "order_login_details"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(Integer, ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False)
    lead_id: Mapped[int] = mapped_column(Integer, ForeignKey("lead_master.id", ondelete="RESTRICT"), nullable=False)
    account_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    item_type: Mapped[str] = mapped_column(String(64), nullable=False)
    item_desc: Mapped[str] = mapped_column(Text, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    __table_args__ = (Index("ix_order_login_lead_item", "lead_id", "item_type"),)
