"""create lead pipeline tables

Revision ID: 202610180002
Revises: 202610180001
Create Date: 2026-10-18 00:02:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610180002"
down_revision: str | None = "202610180001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _scope_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("lead_id", sa.Integer(), sa.ForeignKey("lead_master.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "lead_master",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=True),
        sa.Column(
            "status_id",
            sa.Integer(),
            sa.ForeignKey("status_type_master.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("activity_status", sa.String(length=32), nullable=False, server_default="onGoing"),
        sa.Column("activity_status_remark", sa.Text(), nullable=True),
        sa.Column("firstname", sa.Text(), nullable=False),
        sa.Column("lastname", sa.Text(), nullable=True),
        sa.Column("contact_no", sa.String(length=32), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("final_desc_note", sa.Text(), nullable=True),
        sa.Column("total_project_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("booking_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("pending_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("client_required_order_login_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("required_date_for_dispatch", sa.DateTime(timezone=True), nullable=True),
        sa.Column("onsite_contact_person_name", sa.Text(), nullable=True),
        sa.Column("onsite_contact_person_number", sa.String(length=32), nullable=True),
        sa.Column("material_lift_availability", sa.Boolean(), nullable=True),
        sa.Column("dispatch_planning_remark", sa.Text(), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("user_master.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "activity_status IN ('onGoing', 'onHold', 'lost', 'lostApproval')",
            name="ck_lead_activity_status",
        ),
    )
    op.create_index("ix_lead_vendor_status", "lead_master", ["vendor_id", "status_id"], unique=False)

    op.create_table(
        "lead_documents",
        *_scope_columns(),
        sa.Column(
            "doc_type_id",
            sa.Integer(),
            sa.ForeignKey("document_type_master.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("doc_og_name", sa.Text(), nullable=False),
        sa.Column("doc_sys_name", sa.Text(), nullable=False),
        sa.Column("tech_check_status", sa.String(length=16), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_lead_documents_lead", "lead_documents", ["vendor_id", "lead_id"], unique=False)

    op.create_table(
        "payment_info",
        *_scope_columns(),
        sa.Column(
            "payment_type_id",
            sa.Integer(),
            sa.ForeignKey("payment_type_master.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("payment_text", sa.Text(), nullable=True),
        sa.Column(
            "payment_file_id",
            sa.Integer(),
            sa.ForeignKey("lead_documents.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "ledger",
        *_scope_columns(),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("type IN ('credit', 'debit')", name="ck_ledger_type"),
        sa.CheckConstraint("amount >= 0", name="ck_ledger_amount_nonnegative"),
    )

    op.create_table(
        "lead_user_mapping",
        *_scope_columns(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user_master.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_lead_user_mapping_user",
        "lead_user_mapping",
        ["vendor_id", "user_id", "status"],
        unique=False,
    )

    op.create_table(
        "user_lead_task",
        *_scope_columns(),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("user_master.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("task_type", sa.String(length=64), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("remark", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="open"),
        sa.Column("closed_by", sa.Integer(), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('open', 'completed', 'cancelled')", name="ck_user_lead_task_status"),
    )
    op.create_index("ix_user_lead_task_user", "user_lead_task", ["vendor_id", "user_id", "status"], unique=False)

    op.create_table(
        "lead_detailed_logs",
        *_scope_columns(),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("action_type", sa.String(length=32), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "lead_document_logs",
        *_scope_columns(),
        sa.Column("doc_id", sa.Integer(), sa.ForeignKey("lead_documents.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "lead_logs_id",
            sa.Integer(),
            sa.ForeignKey("lead_detailed_logs.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "lead_status_logs",
        *_scope_columns(),
        sa.Column(
            "status_id",
            sa.Integer(),
            sa.ForeignKey("status_type_master.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_lead_status_logs_scan",
        "lead_status_logs",
        ["vendor_id", "status_id", "created_at"],
        unique=False,
    )

    op.create_table(
        "lead_activity_status_log",
        *_scope_columns(),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("activity_status", sa.String(length=32), nullable=False),
        sa.Column("activity_status_remark", sa.Text(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "site_readiness",
        *_scope_columns(),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("value", sa.Boolean(), nullable=True),
        sa.Column("remark", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("lead_id", "type", name="uq_site_readiness_lead_item"),
    )


def downgrade() -> None:
    op.drop_table("site_readiness")
    op.drop_table("lead_activity_status_log")
    op.drop_index("ix_lead_status_logs_scan", table_name="lead_status_logs")
    op.drop_table("lead_status_logs")
    op.drop_table("lead_document_logs")
    op.drop_table("lead_detailed_logs")
    op.drop_index("ix_user_lead_task_user", table_name="user_lead_task")
    op.drop_table("user_lead_task")
    op.drop_index("ix_lead_user_mapping_user", table_name="lead_user_mapping")
    op.drop_table("lead_user_mapping")
    op.drop_table("ledger")
    op.drop_table("payment_info")
    op.drop_index("ix_lead_documents_lead", table_name="lead_documents")
    op.drop_table("lead_documents")
    op.drop_index("ix_lead_vendor_status", table_name="lead_master")
    op.drop_table("lead_master")
