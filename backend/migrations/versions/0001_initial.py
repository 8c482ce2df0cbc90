"""secrets and workloads

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00

"""
import sqlalchemy as sa
from alembic import op

# Revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "secrets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("namespace", sa.String(253), nullable=False),
        sa.Column("name", sa.String(253), nullable=False),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("namespace", "name", name="uq_secrets_namespace_name"),
    )
    op.create_index("ix_secrets_namespace", "secrets", ["namespace"])

    op.create_table(
        "workloads",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("namespace", sa.String(253), nullable=False),
        sa.Column("name", sa.String(253), nullable=False),
        sa.Column("labels", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("namespace", "name", name="uq_workloads_namespace_name"),
    )
    op.create_index("ix_workloads_namespace", "workloads", ["namespace"])


def downgrade() -> None:
    op.drop_index("ix_workloads_namespace", table_name="workloads")
    op.drop_table("workloads")
    op.drop_index("ix_secrets_namespace", table_name="secrets")
    op.drop_table("secrets")
