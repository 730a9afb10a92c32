"""initial_sla_store

Create the SLA master table plus relationships, activity log, id
counters, lookups and user permissions.

Revision ID: 5c1e0a9d2b71
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5c1e0a9d2b71"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "sla_master" not in existing_tables:
        op.create_table(
            "sla_master",
            sa.Column("row_number", sa.Integer(), nullable=False),
            sa.Column("sla_id", sa.String(length=30), nullable=False),
            sa.Column("parent_id", sa.String(length=30), nullable=True),
            sa.Column("sla_name", sa.String(length=300), nullable=False),
            sa.Column("sla_type", sa.String(length=30), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("team_id", sa.String(length=50), nullable=True),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=True),
            sa.Column("progress", sa.Float(), nullable=True),
            sa.Column("current_value", sa.Float(), nullable=True),
            sa.Column("target_value", sa.Float(), nullable=True),
            sa.Column("target_range_min", sa.Float(), nullable=True),
            sa.Column("target_range_max", sa.Float(), nullable=True),
            sa.Column("use_range", sa.Boolean(), nullable=True),
            sa.Column("frequency", sa.String(length=20), nullable=True),
            sa.Column("notification_emails", sa.Text(), nullable=True),
            sa.Column("external_tracker_url", sa.String(length=500), nullable=True),
            sa.Column("tags", sa.Text(), nullable=True),
            sa.Column("custom_fields", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_by", sa.String(length=200), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_by", sa.String(length=200), nullable=True),
            sa.Column("row_version", sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint("row_number"),
        )
        op.create_index("ix_sla_master_sla_id", "sla_master", ["sla_id"], unique=True)
        op.create_index("ix_sla_master_parent_id", "sla_master", ["parent_id"])
        op.create_index("ix_sla_master_team_id", "sla_master", ["team_id"])
        op.create_index("ix_sla_master_status", "sla_master", ["status"])

    if "sla_relationships" not in existing_tables:
        op.create_table(
            "sla_relationships",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("relationship_id", sa.String(length=40), nullable=False),
            sa.Column("relationship_type", sa.String(length=30), nullable=False),
            sa.Column("source_sla_id", sa.String(length=30), nullable=False),
            sa.Column("target_sla_id", sa.String(length=30), nullable=False),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_by", sa.String(length=200), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("relationship_id"),
        )
        op.create_index("idx_rel_source", "sla_relationships", ["source_sla_id"])
        op.create_index("idx_rel_target", "sla_relationships", ["target_sla_id"])

    if "sla_activity_log" not in existing_tables:
        op.create_table(
            "sla_activity_log",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("log_id", sa.String(length=40), nullable=False),
            sa.Column("sla_id", sa.String(length=30), nullable=False),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.Column("user_id", sa.String(length=200), nullable=False),
            sa.Column("user_name", sa.String(length=200), nullable=True),
            sa.Column("action_type", sa.String(length=40), nullable=False),
            sa.Column("action_details", sa.Text(), nullable=True),
            sa.Column("old_value", sa.Text(), nullable=True),
            sa.Column("new_value", sa.Text(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("log_id"),
        )
        op.create_index("idx_activity_sla", "sla_activity_log", ["sla_id"])
        op.create_index("idx_activity_ts", "sla_activity_log", ["timestamp"])

    if "id_counters" not in existing_tables:
        op.create_table(
            "id_counters",
            sa.Column("name", sa.String(length=50), nullable=False),
            sa.Column("value", sa.Integer(), nullable=False, server_default="0"),
            sa.PrimaryKeyConstraint("name"),
        )

    if "lookup_teams" not in existing_tables:
        op.create_table(
            "lookup_teams",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("team_id", sa.String(length=50), nullable=False),
            sa.Column("team_name", sa.String(length=200), nullable=False),
            sa.Column("department", sa.String(length=200), nullable=True),
            sa.Column("manager_email", sa.String(length=200), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("team_id"),
        )

    if "lookup_statuses" not in existing_tables:
        op.create_table(
            "lookup_statuses",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("status_id", sa.String(length=30), nullable=False),
            sa.Column("status_name", sa.String(length=50), nullable=False),
            sa.Column("display_color", sa.String(length=10), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("status_id"),
        )

    if "user_permissions" not in existing_tables:
        op.create_table(
            "user_permissions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("permission_id", sa.String(length=40), nullable=False),
            sa.Column("user_email", sa.String(length=200), nullable=False),
            sa.Column("permission_type", sa.String(length=20), nullable=False),
            sa.Column("team_ids", sa.Text(), nullable=True),
            sa.Column("sla_ids", sa.Text(), nullable=True),
            sa.Column("granted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("granted_by", sa.String(length=200), nullable=True),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("permission_id"),
        )
        op.create_index("ix_user_permissions_user_email", "user_permissions", ["user_email"])


def downgrade():
    existing_tables = set(sa_inspect(op.get_bind()).get_table_names())
    for table in (
        "user_permissions",
        "lookup_statuses",
        "lookup_teams",
        "id_counters",
        "sla_activity_log",
        "sla_relationships",
        "sla_master",
    ):
        if table in existing_tables:
            op.drop_table(table)
