"""SlaPolicy — deadline arithmetic for lead rotation."""

from __future__ import annotations

from datetime import datetime, timedelta

from lead_router.domain.entities.rule import AssignmentRule


def compute_deadline(rule: AssignmentRule | None, assigned_at: datetime) -> datetime | None:
    """Deadline for an assignment made under ``rule``, or None if rotation is off."""
    if rule is None or not rule.enable_rotation:
        return None
    if not rule.time_limit_minutes or rule.time_limit_minutes <= 0:
        return None
    return assigned_at + timedelta(minutes=rule.time_limit_minutes)


def start_of_day(now: datetime) -> datetime:
    """Midnight of ``now``'s day in its own timezone; quotas reset here."""
    return now.replace(hour=0, minute=0, second=0, microsecond=0)
