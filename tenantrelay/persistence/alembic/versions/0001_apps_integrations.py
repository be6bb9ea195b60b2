"""create apps and app integrations tables

Revision ID: 0001_apps_integrations
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_apps_integrations"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "apps",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False, server_default=""),
        sa.Column("contributors_json", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "app_integrations",
        sa.Column("app_id", sa.String(), sa.ForeignKey("apps.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("integration_id", sa.String(), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("properties_json", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("test", sa.Boolean(), nullable=True),
        sa.Column("condition", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    # The reconciler scans by status on every pass.
    op.create_index("ix_app_integrations_status", "app_integrations", ["status"])
    op.create_index("ix_app_integrations_app_position", "app_integrations", ["app_id", "position"])


def downgrade() -> None:
    op.drop_index("ix_app_integrations_app_position", table_name="app_integrations")
    op.drop_index("ix_app_integrations_status", table_name="app_integrations")
    op.drop_table("app_integrations")
    op.drop_table("apps")
