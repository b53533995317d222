"""Tests for domain entities."""

from datetime import datetime, timedelta, timezone

from lead_router.domain.entities.assignment_state import AssignmentState
from lead_router.domain.entities.events import AssignmentDecided, DegradedMode, LeadRotated
from lead_router.domain.entities.rotation_cursor import cursor_key
from lead_router.domain.entities.rule import AssignmentRule, Criterion
from lead_router.domain.entities.sales_user import SalesUser
from lead_router.domain.value_objects.assign_target import SpecificUser
from lead_router.domain.value_objects.enums import (
    AssignmentSource,
    AssignmentStatus,
    DistributionType,
    Operator,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _state(**kwargs) -> AssignmentState:
    kwargs.setdefault("assigned_at", T0)
    return AssignmentState(id=1, lead_id="L1", assignee_id="u1", **kwargs)


def test_state_is_due_only_when_armed_and_expired():
    armed = _state(sla_deadline_at=T0 + timedelta(minutes=60))
    assert not armed.is_due(T0 + timedelta(minutes=59))
    assert armed.is_due(T0 + timedelta(minutes=60))
    assert not _state().is_due(T0 + timedelta(days=1))


def test_state_is_not_due_once_exhausted():
    s = _state(sla_deadline_at=T0, status=AssignmentStatus.ROTATION_EXHAUSTED)
    assert not s.is_due(T0 + timedelta(hours=1))


def test_activity_before_assignment_does_not_count():
    s = _state()
    assert not s.has_activity_since_assignment(T0 - timedelta(seconds=1))
    assert s.has_activity_since_assignment(T0)
    assert _state(last_activity_at=T0 + timedelta(minutes=5)).has_activity_since_assignment()


def test_rotated_to_increments_count_and_resets_version():
    s = _state(rotation_count=1, version=4, applied_rule_id="r1")
    later = T0 + timedelta(hours=1)
    successor = s.rotated_to("u2", later, later + timedelta(minutes=30))
    assert successor.assignee_id == "u2"
    assert successor.rotation_count == 2
    assert successor.source == AssignmentSource.ROTATION
    assert successor.applied_rule_id == "r1"
    assert successor.version == 0
    assert successor.id is None


def test_sales_user_quota():
    assert not SalesUser(id="u1", name="U1", role="rep").has_quota()
    assert not SalesUser(id="u1", name="U1", role="rep", daily_lead_quota=0).has_quota()
    assert SalesUser(id="u1", name="U1", role="rep", daily_lead_quota=5).has_quota()


def test_rule_sort_key_orders_by_priority_then_creation():
    def rule(rid, priority, created):
        return AssignmentRule(
            id=rid, name=rid, distribution_type=DistributionType.SPECIFIC_USER,
            assign_to=SpecificUser("u1"), priority=priority, created_at=created,
        )

    rules = [rule("c", 2, T0), rule("b", 1, T0 + timedelta(minutes=1)), rule("a", 1, T0)]
    assert [r.id for r in sorted(rules, key=lambda r: r.sort_key())] == ["a", "b", "c"]


def test_rule_is_catch_all():
    r = AssignmentRule(
        id="r", name="r", distribution_type=DistributionType.SPECIFIC_USER,
        assign_to=SpecificUser("u1"),
    )
    assert r.is_catch_all()
    r.criteria.append(Criterion("source", Operator.EQUALS, "web"))
    assert not r.is_catch_all()


def test_cursor_key_format():
    assert cursor_key("42", "users") == "rule-42|users"


def test_event_payload_serializes_datetimes():
    event = AssignmentDecided(
        lead_id="L1", rule_id="r1", assignee_id="u1", reason="rule_matched", occurred_at=T0
    )
    payload = event.to_payload()
    assert payload["event"] == "AssignmentDecided"
    assert payload["occurred_at"] == T0.isoformat()
    assert not event.degraded


def test_degraded_mode_is_flagged():
    event = DegradedMode(lead_id="L1", rule_id=None, component="user_directory", detail="down")
    assert event.degraded
    rotated = LeadRotated(
        lead_id="L1", from_user_id="u1", to_user_id="u2", reason="sla_expired", rotation_count=1
    )
    assert rotated.name == "LeadRotated"
