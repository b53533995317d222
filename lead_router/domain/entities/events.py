"""Domain events emitted to the audit / notification sink."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DomainEvent:
    lead_id: str | None

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def degraded(self) -> bool:
        return False

    def to_payload(self) -> dict:
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, datetime):
                payload[key] = value.isoformat()
        payload["event"] = self.name
        return payload


@dataclass(frozen=True)
class AssignmentDecided(DomainEvent):
    rule_id: str | None
    assignee_id: str | None
    reason: str
    occurred_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class LeadRotated(DomainEvent):
    from_user_id: str
    to_user_id: str
    reason: str
    rotation_count: int
    occurred_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class RotationExhausted(DomainEvent):
    assignee_id: str | None
    reason: str
    occurred_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class DegradedMode(DomainEvent):
    rule_id: str | None
    component: str
    detail: str
    occurred_at: datetime = field(default_factory=_utcnow)

    @property
    def degraded(self) -> bool:
        return True
