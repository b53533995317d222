"""Tests for AssignmentCoordinator with in-memory fakes."""

from __future__ import annotations

from datetime import timedelta

import pytest

from lead_router.domain.entities.events import AssignmentDecided, DegradedMode
from lead_router.domain.entities.lead import Lead
from lead_router.domain.entities.rotation_cursor import cursor_key
from lead_router.domain.exceptions import LeadNotFoundError, UnknownUserError
from lead_router.domain.value_objects.assign_target import RolePool, SpecificUser, UserPool
from lead_router.domain.value_objects.enums import (
    AssignmentSource,
    AssignmentStatus,
    DecisionReason,
    DistributionType,
)


def _facebook_world(world):
    for uid in ("u1", "u2", "u3"):
        world.add_user(uid)
    world.add_rule(
        "fb", DistributionType.CAMPAIGN_USERS, UserPool(("u1", "u2", "u3")),
        criteria=[("source", "equals", "facebook")], priority=1,
        enable_rotation=True, time_limit_minutes=60,
    )
    return world.coordinator()


@pytest.mark.asyncio
async def test_facebook_leads_spread_over_three_users(world, t0):
    coordinator = _facebook_world(world)

    decisions = [
        await coordinator.assign_lead(Lead(id=f"L{i}", source="facebook"), t0)
        for i in range(1, 5)
    ]

    assert [d.assignee_id for d in decisions] == ["u1", "u2", "u3", "u1"]
    assert all(d.rule_id == "fb" for d in decisions)
    assert decisions[0].sla_deadline_at == t0 + timedelta(minutes=60)
    assert world.uow.commits == 4


@pytest.mark.asyncio
async def test_assignment_persists_state_and_emits_event(world, t0):
    coordinator = _facebook_world(world)

    decision = await coordinator.assign_lead(Lead(id="L1", source="Facebook"), t0)

    state = await world.states.get_current("L1")
    assert state.assignee_id == decision.assignee_id == "u1"
    assert state.applied_rule_id == "fb"
    assert state.source == AssignmentSource.RULE
    assert state.status == AssignmentStatus.ASSIGNED
    [event] = world.events.of_type(AssignmentDecided)
    assert event.assignee_id == "u1"
    assert event.reason == DecisionReason.RULE_MATCHED.value


@pytest.mark.asyncio
async def test_catch_all_takes_unmatched_leads(world, t0):
    world.add_user("u1")
    world.add_user("u9")
    world.add_rule(
        "fb", DistributionType.SPECIFIC_USER, SpecificUser("u1"),
        criteria=[("source", "equals", "facebook")], priority=1,
    )
    world.add_rule("all", DistributionType.SPECIFIC_USER, SpecificUser("u9"), priority=99)
    coordinator = world.coordinator()

    web = await coordinator.assign_lead(Lead(id="L1", source="website"), t0)
    fb = await coordinator.assign_lead(Lead(id="L2", source="facebook"), t0)

    assert (web.rule_id, web.assignee_id) == ("all", "u9")
    assert (fb.rule_id, fb.assignee_id) == ("fb", "u1")


@pytest.mark.asyncio
async def test_no_rule_matched_is_unassigned(world, t0):
    world.add_rule(
        "fb", DistributionType.SPECIFIC_USER, SpecificUser("u1"),
        criteria=[("source", "equals", "facebook")],
    )

    decision = await world.coordinator().assign_lead(Lead(id="L1", source="web"), t0)

    assert not decision.is_assigned
    assert decision.reason == DecisionReason.NO_RULE_MATCHED
    assert await world.states.get_current("L1") is None
    assert world.events.names == ["AssignmentDecided"]


@pytest.mark.asyncio
async def test_empty_pool_does_not_advance_cursor(world, t0):
    world.add_user("u1", is_active=False)
    world.add_rule("r1", DistributionType.ROUND_ROBIN_ROLE, RolePool("sales_rep"))

    decision = await world.coordinator().assign_lead(Lead(id="L1"), t0)

    assert decision.reason == DecisionReason.EMPTY_POOL
    assert world.cursors.cursors == {}


@pytest.mark.asyncio
async def test_failed_commit_rolls_back_cursor(world, t0):
    coordinator = _facebook_world(world)
    world.uow.fail_next_commit = True

    failed = await coordinator.assign_lead(Lead(id="L1", source="facebook"), t0)
    retried = await coordinator.assign_lead(Lead(id="L1", source="facebook"), t0)

    assert failed.reason == DecisionReason.ENGINE_ERROR
    assert failed.degraded
    assert retried.assignee_id == "u1"
    assert world.cursors.cursors[cursor_key("fb", "users")].version == 1
    assert len(await world.states.history("L1")) == 1


@pytest.mark.asyncio
async def test_engine_error_is_unassigned_with_degraded_event(world, t0):
    world.rules.fail = True

    decision = await world.coordinator().assign_lead(Lead(id="L1"), t0)

    assert decision.reason == DecisionReason.ENGINE_ERROR
    assert "rule store unavailable" in decision.error
    assert world.events.names == ["DegradedMode", "AssignmentDecided"]


@pytest.mark.asyncio
async def test_degraded_pick_still_assigns(world, t0):
    world.add_rule("r1", DistributionType.CAMPAIGN_USERS, UserPool(("u1", "u2")))
    world.directory.fail = True

    decision = await world.coordinator().assign_lead(Lead(id="L1"), t0)

    assert decision.assignee_id == "u1"
    assert decision.reason == DecisionReason.DEGRADED_FALLBACK
    [degraded] = world.events.of_type(DegradedMode)
    assert degraded.component == "user_directory"


@pytest.mark.asyncio
async def test_rotation_disabled_arms_no_deadline(world, t0):
    world.add_user("u1")
    world.add_rule("r1", DistributionType.SPECIFIC_USER, SpecificUser("u1"))

    decision = await world.coordinator().assign_lead(Lead(id="L1"), t0)

    assert decision.sla_deadline_at is None


@pytest.mark.asyncio
async def test_lead_created_loads_stored_lead(world, t0):
    coordinator = _facebook_world(world)
    world.add_lead("L1", source="facebook")

    decision = await coordinator.handle_lead_created("L1", t0)

    assert decision.assignee_id == "u1"
    with pytest.raises(LeadNotFoundError):
        await coordinator.handle_lead_created("missing", t0)


@pytest.mark.asyncio
async def test_lead_updated_keeps_existing_owner(world, t0):
    coordinator = _facebook_world(world)
    world.add_lead("L1", source="facebook")
    world.add_lead("L2", source="facebook")
    await coordinator.handle_lead_created("L1", t0)

    kept = await coordinator.handle_lead_updated("L1", t0)
    routed = await coordinator.handle_lead_updated("L2", t0)

    assert kept.reason == DecisionReason.ALREADY_ASSIGNED
    assert kept.assignee_id == "u1"
    assert routed.assignee_id == "u2"


@pytest.mark.asyncio
async def test_manual_override_replaces_owner_and_disarms(world, t0):
    coordinator = _facebook_world(world)
    world.add_user("boss")
    world.add_lead("L1", source="facebook")
    await coordinator.handle_lead_created("L1", t0)

    state = await coordinator.manual_override("L1", "boss", t0 + timedelta(minutes=5))

    assert state.assignee_id == "boss"
    assert state.source == AssignmentSource.MANUAL
    assert state.sla_deadline_at is None
    assert state.applied_rule_id == "fb"
    history = await coordinator.history("L1")
    assert [s.assignee_id for s in history] == ["u1", "boss"]
    assert not history[0].is_current
    assert world.events.of_type(AssignmentDecided)[-1].reason == DecisionReason.MANUAL_OVERRIDE.value


@pytest.mark.asyncio
async def test_manual_override_rejects_unknown_user_and_lead(world, t0):
    world.add_user("u1")
    world.add_user("gone", is_active=False)
    world.add_lead("L1")
    coordinator = world.coordinator()

    with pytest.raises(UnknownUserError):
        await coordinator.manual_override("L1", "nobody", t0)
    with pytest.raises(UnknownUserError):
        await coordinator.manual_override("L1", "gone", t0)
    with pytest.raises(LeadNotFoundError):
        await coordinator.manual_override("missing", "u1", t0)


@pytest.mark.asyncio
async def test_bulk_assign_dedupes_and_skips_unknown(world, t0):
    world.add_user("u1")
    for lid in ("L1", "L2", "L3"):
        world.add_lead(lid)

    count = await world.coordinator().assign_leads(["L1", "L2", "L2", "nope", "L3"], "u1", t0)

    assert count == 3
    for lid in ("L1", "L2", "L3"):
        state = await world.states.get_current(lid)
        assert state.assignee_id == "u1"
        assert state.source == AssignmentSource.BULK
    assert world.uow.commits == 1
    assert len(world.events.of_type(AssignmentDecided)) == 3


@pytest.mark.asyncio
async def test_bulk_assign_requires_active_user(world, t0):
    world.add_lead("L1")
    with pytest.raises(UnknownUserError):
        await world.coordinator().assign_leads(["L1"], "ghost", t0)


@pytest.mark.asyncio
async def test_activity_disarms_deadline(world, t0):
    coordinator = _facebook_world(world)
    world.add_lead("L1", source="facebook")
    await coordinator.handle_lead_created("L1", t0)

    state = await coordinator.record_activity("L1", t0 + timedelta(minutes=10))

    assert state.sla_deadline_at is None
    assert state.last_activity_at == t0 + timedelta(minutes=10)
    assert await world.leads.last_activity_at("L1") == t0 + timedelta(minutes=10)


@pytest.mark.asyncio
async def test_activity_for_unknown_lead_is_rejected(world, t0):
    coordinator = world.coordinator()

    with pytest.raises(LeadNotFoundError):
        await coordinator.record_activity("ghost", t0)

    assert world.leads.activities == {}
