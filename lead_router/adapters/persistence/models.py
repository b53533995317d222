"""SQLAlchemy ORM models — maps to PostgreSQL tables."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lead_router.adapters.persistence.database import Base


class AssignmentRuleModel(Base):
    __tablename__ = "assignment_rules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    entity: Mapped[str] = mapped_column(String(30), nullable=False, default="lead")
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    criteria: Mapped[list[dict]] = mapped_column(JSONB, nullable=False, default=list)
    distribution_type: Mapped[str] = mapped_column(String(30), nullable=False)
    assign_to: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    branch_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    enable_rotation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    time_limit_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rotation_type: Mapped[str] = mapped_column(String(20), nullable=False, default="random")
    rotation_pool: Mapped[list[str]] = mapped_column(ARRAY(String(64)), nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_rules_entity_branch", "entity", "branch_id"),
        Index("idx_rules_priority", "priority", "created_at"),
    )


class SalesUserModel(Base):
    __tablename__ = "sales_users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    branch_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reports_to_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("sales_users.id"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    daily_lead_quota: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("idx_users_role_branch", "role", "branch_id"),)


class LeadModel(Base):
    __tablename__ = "leads"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    entity: Mapped[str] = mapped_column(String(30), nullable=False, default="lead")
    source: Mapped[str | None] = mapped_column(String(100), nullable=True)
    campaign_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    industry: Mapped[str | None] = mapped_column(String(100), nullable=True)
    lead_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    branch_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="open")
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    activities: Mapped[list["LeadActivityModel"]] = relationship(back_populates="lead")

    __table_args__ = (Index("idx_leads_status", "status"),)


class LeadActivityModel(Base):
    __tablename__ = "lead_activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lead_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("leads.id", ondelete="CASCADE"), nullable=False
    )
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    lead: Mapped["LeadModel"] = relationship(back_populates="activities")

    __table_args__ = (Index("idx_activities_lead", "lead_id", "occurred_at"),)


class AssignmentStateModel(Base):
    __tablename__ = "assignment_states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lead_id: Mapped[str] = mapped_column(String(64), ForeignKey("leads.id"), nullable=False)
    # No FK: states outlive the rules that produced them
    applied_rule_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    assignee_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("sales_users.id"), nullable=False
    )
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sla_deadline_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rotation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="assigned")
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="rule")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_activity_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    superseded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "uq_states_current_lead", "lead_id",
            unique=True, postgresql_where=text("is_current"),
        ),
        Index(
            "idx_states_due", "status", "sla_deadline_at",
            postgresql_where=text("is_current"),
        ),
        Index("idx_states_assignee_day", "assignee_id", "assigned_at"),
    )


class RotationCursorModel(Base):
    __tablename__ = "rotation_cursors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(500), unique=True, nullable=False)
    last_assigned_index: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)
    last_assigned_user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class AuditEntryModel(Base):
    __tablename__ = "audit_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    lead_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    degraded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_audit_lead", "lead_id"),
        Index("idx_audit_type", "event_type"),
    )
