"""areas and audit log

Revision ID: 0001_areas
Revises:
Create Date: 2026-10-18

"""

import sqlalchemy as sa

from alembic import op

revision = "0001_areas"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "areas",
        sa.Column("area_id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("machines", sa.JSON(), nullable=False),
        sa.Column(
            "parentId",
            sa.String(length=64),
            sa.ForeignKey("areas.area_id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    op.create_index(op.f("ix_areas_parentId"), "areas", ["parentId"], unique=False)

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("site_code", sa.String(length=16), nullable=False, index=True),
        sa.Column("actor", sa.String(length=64), nullable=True, index=True),
        sa.Column("action", sa.String(length=64), nullable=False, index=True),
        sa.Column("entity_type", sa.String(length=32), nullable=False, index=True),
        sa.Column("entity_id", sa.String(length=64), nullable=False, index=True),
        sa.Column("request_id", sa.String(length=64), nullable=True, index=True),
        sa.Column("details_json", sa.JSON(), nullable=False),
        sa.Column("created_at_utc", sa.DateTime(), nullable=False, index=True),
    )


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_index(op.f("ix_areas_parentId"), table_name="areas")
    op.drop_table("areas")
