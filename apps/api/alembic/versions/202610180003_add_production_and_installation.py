"""add order login, post production and installation fields

Revision ID: 202610180003
Revises: 202610180002
Create Date: 2026-10-18 00:03:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610180003"
down_revision: str | None = "202610180002"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

_LEAD_COLUMNS = (
    "client_required_order_login_completion_date",
    "hardware_packing_details_remark",
    "woodwork_packing_details_remark",
    "is_carcass_installation_completed",
    "carcass_installation_completion_date",
    "is_shutter_installation_completed",
    "shutter_installation_completion_date",
)


def upgrade() -> None:
    with op.batch_alter_table("lead_master") as batch:
        batch.add_column(sa.Column("client_required_order_login_completion_date", sa.DateTime(timezone=True), nullable=True))
        batch.add_column(sa.Column("hardware_packing_details_remark", sa.Text(), nullable=True))
        batch.add_column(sa.Column("woodwork_packing_details_remark", sa.Text(), nullable=True))
        batch.add_column(
            sa.Column("is_carcass_installation_completed", sa.Boolean(), nullable=False, server_default=sa.false())
        )
        batch.add_column(sa.Column("carcass_installation_completion_date", sa.DateTime(timezone=True), nullable=True))
        batch.add_column(
            sa.Column("is_shutter_installation_completed", sa.Boolean(), nullable=False, server_default=sa.false())
        )
        batch.add_column(sa.Column("shutter_installation_completion_date", sa.DateTime(timezone=True), nullable=True))

    op.create_table(
        "order_login_details",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("vendor_id", sa.Integer(), sa.ForeignKey("vendor_master.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("lead_id", sa.Integer(), sa.ForeignKey("lead_master.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=True),
        sa.Column("item_type", sa.String(length=64), nullable=False),
        sa.Column("item_desc", sa.Text(), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_order_login_lead_item", "order_login_details", ["lead_id", "item_type"])


def downgrade() -> None:
    op.drop_index("ix_order_login_lead_item", table_name="order_login_details")
    op.drop_table("order_login_details")
    with op.batch_alter_table("lead_master") as batch:
        for column in reversed(_LEAD_COLUMNS):
            batch.drop_column(column)
