"""Initial schema — rules, users, leads, assignment states, cursors, audit.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSONB

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Assignment rules
    op.create_table(
        "assignment_rules",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("entity", sa.String(30), nullable=False, server_default="lead"),
        sa.Column("priority", sa.Integer, nullable=False, server_default="1"),
        sa.Column("criteria", JSONB, nullable=False, server_default="[]"),
        sa.Column("distribution_type", sa.String(30), nullable=False),
        sa.Column("assign_to", JSONB, nullable=False, server_default="{}"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("branch_id", sa.String(64), nullable=True),
        sa.Column("enable_rotation", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("time_limit_minutes", sa.Integer, nullable=True),
        sa.Column("rotation_type", sa.String(20), nullable=False, server_default="random"),
        sa.Column("rotation_pool", ARRAY(sa.String(64)), nullable=False, server_default="{}"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_rules_entity_branch", "assignment_rules", ["entity", "branch_id"])
    op.create_index("idx_rules_priority", "assignment_rules", ["priority", "created_at"])

    # Sales users
    op.create_table(
        "sales_users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("branch_id", sa.String(64), nullable=True),
        sa.Column(
            "reports_to_id", sa.String(64), sa.ForeignKey("sales_users.id"), nullable=True
        ),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("daily_lead_quota", sa.Integer, nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_users_role_branch", "sales_users", ["role", "branch_id"])

    # Leads
    op.create_table(
        "leads",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("entity", sa.String(30), nullable=False, server_default="lead"),
        sa.Column("source", sa.String(100), nullable=True),
        sa.Column("campaign_name", sa.String(200), nullable=True),
        sa.Column("country", sa.String(100), nullable=True),
        sa.Column("state", sa.String(100), nullable=True),
        sa.Column("industry", sa.String(100), nullable=True),
        sa.Column("lead_score", sa.Float, nullable=True),
        sa.Column("branch_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_leads_status", "leads", ["status"])

    # Lead activities
    op.create_table(
        "lead_activities",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "lead_id", sa.String(64), sa.ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_activities_lead", "lead_activities", ["lead_id", "occurred_at"])

    # Assignment states (current + superseded history)
    op.create_table(
        "assignment_states",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("lead_id", sa.String(64), sa.ForeignKey("leads.id"), nullable=False),
        sa.Column("applied_rule_id", sa.String(64), nullable=True),
        sa.Column(
            "assignee_id", sa.String(64), sa.ForeignKey("sales_users.id"), nullable=False
        ),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sla_deadline_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rotation_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("status", sa.String(30), nullable=False, server_default="assigned"),
        sa.Column("source", sa.String(20), nullable=False, server_default="rule"),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_current", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("superseded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "uq_states_current_lead", "assignment_states", ["lead_id"],
        unique=True, postgresql_where=sa.text("is_current"),
    )
    op.create_index(
        "idx_states_due", "assignment_states", ["status", "sla_deadline_at"],
        postgresql_where=sa.text("is_current"),
    )
    op.create_index("idx_states_assignee_day", "assignment_states", ["assignee_id", "assigned_at"])

    # Round-robin cursors
    op.create_table(
        "rotation_cursors",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("key", sa.String(500), unique=True, nullable=False),
        sa.Column("last_assigned_index", sa.Integer, nullable=False, server_default="-1"),
        sa.Column("last_assigned_user_id", sa.String(64), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )

    # Audit trail of emitted events
    op.create_table(
        "audit_entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("lead_id", sa.String(64), nullable=True),
        sa.Column("payload", JSONB, nullable=False, server_default="{}"),
        sa.Column("degraded", sa.Boolean, nullable=False, server_default="false"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_audit_lead", "audit_entries", ["lead_id"])
    op.create_index("idx_audit_type", "audit_entries", ["event_type"])


def downgrade() -> None:
    op.drop_table("audit_entries")
    op.drop_table("rotation_cursors")
    op.drop_table("assignment_states")
    op.drop_table("lead_activities")
    op.drop_table("leads")
    op.drop_table("sales_users")
    op.drop_table("assignment_rules")
