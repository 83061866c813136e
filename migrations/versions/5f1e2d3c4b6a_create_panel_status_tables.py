"""create_panel_status_tables

Create `panels` and `panel_status_histories` tables.

Revision ID: 5f1e2d3c4b6a
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5f1e2d3c4b6a"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "panels" not in existing_tables:
        op.create_table(
            "panels",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("project_id", sa.String(length=36), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("status", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("issued_for_production_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_panels_project_id", "panels", ["project_id"])
        op.create_index("idx_panel_project_status", "panels", ["project_id", "status"])

    if "panel_status_histories" not in existing_tables:
        op.create_table(
            "panel_status_histories",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("panel_id", sa.String(length=36), nullable=False),
            sa.Column("status", sa.Integer(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("user_id", sa.String(length=150), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("image_url", sa.String(length=500), nullable=True),
            sa.ForeignKeyConstraint(["panel_id"], ["panels.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_psh_panel_status", "panel_status_histories", ["panel_id", "status"])
        op.create_index("idx_psh_panel_created", "panel_status_histories", ["panel_id", "created_at"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "panel_status_histories" in existing_tables:
        op.drop_index("idx_psh_panel_created", table_name="panel_status_histories")
        op.drop_index("idx_psh_panel_status", table_name="panel_status_histories")
        op.drop_table("panel_status_histories")

    if "panels" in existing_tables:
        op.drop_index("idx_panel_project_status", table_name="panels")
        op.drop_index("ix_panels_project_id", table_name="panels")
        op.drop_table("panels")
