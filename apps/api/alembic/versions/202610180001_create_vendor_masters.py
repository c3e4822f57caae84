"""create vendor, user and tag master tables

Revision ID: 202610180001
Revises:
Create Date: 2026-10-18 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610180001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _tag_master(name: str, constraint: str, tag_length: int, type_column: sa.types.TypeEngine) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("tag", sa.String(length=tag_length), nullable=False),
        sa.Column("type", type_column, nullable=False),
        *([sa.Column("label", sa.Text(), nullable=False)] if name == "status_type_master" else []),
        sa.UniqueConstraint("vendor_id", "tag", name=constraint),
    )


def upgrade() -> None:
    op.create_table(
        "vendor_master",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "user_type_master",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_type", sa.String(length=64), nullable=False, unique=True),
    )
    op.create_table(
        "user_master",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "user_type_id",
            sa.Integer(),
            sa.ForeignKey("user_type_master.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("user_name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    _tag_master("status_type_master", "uq_status_type_vendor_tag", 32, sa.String(length=64))
    _tag_master("document_type_master", "uq_document_type_vendor_tag", 32, sa.Text())
    _tag_master("payment_type_master", "uq_payment_type_vendor_tag", 32, sa.Text())


def downgrade() -> None:
    op.drop_table("payment_type_master")
    op.drop_table("document_type_master")
    op.drop_table("status_type_master")
    op.drop_table("user_master")
    op.drop_table("user_type_master")
    op.drop_table("vendor_master")
