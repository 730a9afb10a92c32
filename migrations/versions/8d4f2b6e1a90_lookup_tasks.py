"""lookup_tasks

Add the task lookup that groups teams (matched on lookup_teams.department).

Revision ID: 8d4f2b6e1a90
Revises: 5c1e0a9d2b71
Create Date: 2026-10-19 14:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "8d4f2b6e1a90"
down_revision = "5c1e0a9d2b71"
branch_labels = None
depends_on = None


def upgrade():
    if "lookup_tasks" in set(sa_inspect(op.get_bind()).get_table_names()):
        return
    op.create_table(
        "lookup_tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.String(length=30), nullable=False),
        sa.Column("task_name", sa.String(length=100), nullable=False,
                  comment="matched against LookupTeam.department"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("task_id"),
    )


def downgrade():
    if "lookup_tasks" in set(sa_inspect(op.get_bind()).get_table_names()):
        op.drop_table("lookup_tasks")
