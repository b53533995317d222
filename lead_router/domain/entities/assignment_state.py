"""AssignmentState entity — the engine's record of who owns a lead and why."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from lead_router.domain.value_objects.enums import AssignmentSource, AssignmentStatus


@dataclass
class AssignmentState:
    id: int | None
    lead_id: str
    assignee_id: str
    assigned_at: datetime
    applied_rule_id: str | None = None
    sla_deadline_at: datetime | None = None
    rotation_count: int = 0
    status: AssignmentStatus = AssignmentStatus.ASSIGNED
    source: AssignmentSource = AssignmentSource.RULE
    version: int = 0
    claimed_at: datetime | None = None
    last_activity_at: datetime | None = None
    is_current: bool = True
    superseded_at: datetime | None = None

    def is_armed(self) -> bool:
        return self.sla_deadline_at is not None

    def is_due(self, now: datetime) -> bool:
        return (
            self.is_current
            and self.status == AssignmentStatus.ASSIGNED
            and self.sla_deadline_at is not None
            and self.sla_deadline_at <= now
        )

    def has_activity_since_assignment(self, last_activity_at: datetime | None = None) -> bool:
        """True when any activity at or after ``assigned_at`` is known."""
        candidates = [t for t in (self.last_activity_at, last_activity_at) if t is not None]
        return any(t >= self.assigned_at for t in candidates)

    def rotated_to(self, assignee_id: str, now: datetime, deadline: datetime | None) -> "AssignmentState":
        """Successor state after an SLA rotation."""
        return AssignmentState(
            id=None,
            lead_id=self.lead_id,
            assignee_id=assignee_id,
            assigned_at=now,
            applied_rule_id=self.applied_rule_id,
            sla_deadline_at=deadline,
            rotation_count=self.rotation_count + 1,
            status=AssignmentStatus.ASSIGNED,
            source=AssignmentSource.ROTATION,
        )

    def copy(self, **changes) -> "AssignmentState":
        return replace(self, **changes)
