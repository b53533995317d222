"""RotationScheduler — arms SLA deadlines and sweeps expired ones.

Deadlines live on the persisted AssignmentState, never in a process-local
timer, so a restart loses nothing: the next sweep simply finds them.

Every sweep follows claim-then-act:

1. ``find_due`` reads candidate states (with their versions).
2. ``claim`` flips a state to rotation-pending iff its version is unchanged,
   and commits immediately. Losing the claim means another worker owns it.
3. The successor is chosen and written with ``supersede_if_version``; if a
   manual override or new activity bumped the version in the meantime, the
   result is discarded and the cursor advance is rolled back with it.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from lead_router.application.ports.assignment_state_repo import AssignmentStateRepository
from lead_router.application.ports.event_sink import EventSink
from lead_router.application.ports.lead_store import LeadStore
from lead_router.application.ports.rule_repo import RuleRepository
from lead_router.application.ports.unit_of_work import UnitOfWork
from lead_router.application.ports.user_directory import UserDirectory
from lead_router.application.use_cases.distribution import DistributionService
from lead_router.domain.entities.assignment_state import AssignmentState
from lead_router.domain.entities.events import (
    DegradedMode,
    DomainEvent,
    LeadRotated,
    RotationExhausted,
)
from lead_router.domain.entities.rotation_cursor import cursor_key
from lead_router.domain.entities.rule import AssignmentRule
from lead_router.domain.exceptions import NoCurrentAssignmentError, RuleNotFoundError
from lead_router.domain.policies.sla import compute_deadline
from lead_router.domain.value_objects.enums import DecisionReason, RotationType

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SweepReport:
    """Counters for one sweep pass."""

    scanned: int = 0
    rotated: int = 0
    exhausted: int = 0
    disarmed: int = 0
    skipped: int = 0
    stale: int = 0
    failed: int = 0


class RotationScheduler:
    def __init__(
        self,
        rule_repo: RuleRepository,
        state_repo: AssignmentStateRepository,
        lead_store: LeadStore,
        directory: UserDirectory,
        distribution: DistributionService,
        events: EventSink,
        uow: UnitOfWork,
        max_rotations: int = 3,
        claim_ttl_seconds: int = 300,
        batch_size: int = 100,
        rng: random.Random | None = None,
        clock=_utcnow,
    ):
        self._rules = rule_repo
        self._states = state_repo
        self._leads = lead_store
        self._directory = directory
        self._distribution = distribution
        self._events = events
        self._uow = uow
        self._max_rotations = max_rotations
        self._claim_ttl = timedelta(seconds=claim_ttl_seconds)
        self._batch_size = batch_size
        self._rng = rng or random.Random()
        self._clock = clock

    @staticmethod
    def deadline_for(rule: AssignmentRule | None, assigned_at: datetime) -> datetime | None:
        return compute_deadline(rule, assigned_at)

    async def rearm(self, lead_id: str, now: datetime | None = None) -> AssignmentState:
        """Explicitly arm a new rotation cycle for the lead's current owner.

        This is the only way a lead leaves the manual-override or exhausted
        state back into automatic rotation.
        """
        now = now or self._clock()
        current = await self._states.get_current(lead_id)
        if current is None:
            raise NoCurrentAssignmentError(lead_id)
        if current.applied_rule_id is None:
            raise RuleNotFoundError("<none>")
        rule = await self._rules.get_by_id(current.applied_rule_id)
        if rule is None:
            raise RuleNotFoundError(current.applied_rule_id)

        deadline = self.deadline_for(rule, now)
        if deadline is None:
            logger.info("Lead %s: rule %s has rotation disabled, nothing to arm", lead_id, rule.id)
            return current

        if not await self._states.set_deadline(current, deadline):
            await self._uow.rollback()
            # Lost a race; re-read so the caller sees what actually happened
            latest = await self._states.get_current(lead_id)
            return latest or current
        await self._uow.commit()
        logger.info("Lead %s: rotation re-armed until %s", lead_id, deadline.isoformat())
        return await self._states.get_current(lead_id)

    async def sweep(self, now: datetime | None = None) -> SweepReport:
        """Process every due state once. Safe to run from several workers."""
        now = now or self._clock()
        report = SweepReport()
        due = await self._states.find_due(now, now - self._claim_ttl, self._batch_size)
        report.scanned = len(due)

        for state in due:
            try:
                await self._process(state, now, report)
            except Exception:
                report.failed += 1
                logger.exception("Rotation sweep failed for lead %s, retrying next cycle", state.lead_id)
                await self._uow.rollback()

        if report.scanned:
            logger.info(
                "Rotation sweep: scanned=%d rotated=%d exhausted=%d disarmed=%d skipped=%d stale=%d failed=%d",
                report.scanned, report.rotated, report.exhausted, report.disarmed,
                report.skipped, report.stale, report.failed,
            )
        return report

    async def _process(self, state: AssignmentState, now: datetime, report: SweepReport) -> None:
        if state.rotation_count < self._max_rotations:
            last_activity = await self._leads.last_activity_at(state.lead_id)
            if state.has_activity_since_assignment(last_activity):
                if await self._states.set_deadline(state, None):
                    await self._uow.commit()
                    report.disarmed += 1
                else:
                    await self._uow.rollback()
                    report.skipped += 1
                return

        claimed = await self._states.claim(state, now)
        if claimed is None:
            await self._uow.rollback()
            report.skipped += 1
            logger.debug("Lead %s already claimed by another worker", state.lead_id)
            return
        await self._uow.commit()

        if claimed.rotation_count >= self._max_rotations:
            await self._exhaust(claimed, "max_rotations_reached", report)
            return

        rule = await self._rules.get_by_id(claimed.applied_rule_id) if claimed.applied_rule_id else None
        if rule is None:
            await self._exhaust(claimed, "rule_missing", report)
            return
        if not rule.enable_rotation:
            if await self._states.set_deadline(claimed, None):
                await self._uow.commit()
                report.disarmed += 1
            else:
                await self._uow.rollback()
                report.stale += 1
            return

        successor_id, degraded = await self._choose_successor(rule, claimed, now)
        if degraded is not None:
            await self._events.publish(degraded)
        if successor_id is None:
            await self._uow.rollback()
            await self._exhaust(claimed, "no_alternate_candidate", report)
            return

        successor = claimed.rotated_to(successor_id, now, self.deadline_for(rule, now))
        saved = await self._states.supersede_if_version(claimed, successor, now)
        if saved is None:
            await self._uow.rollback()
            report.stale += 1
            logger.info("Lead %s: rotation result discarded, state changed meanwhile", claimed.lead_id)
            return
        await self._uow.commit()
        report.rotated += 1

        logger.info(
            "Lead %s rotated %s → %s (rule %s, rotation #%d)",
            claimed.lead_id, claimed.assignee_id, successor_id, rule.id, saved.rotation_count,
        )
        await self._events.publish(
            LeadRotated(
                lead_id=claimed.lead_id,
                from_user_id=claimed.assignee_id,
                to_user_id=successor_id,
                reason=DecisionReason.SLA_EXPIRED.value,
                rotation_count=saved.rotation_count,
            )
        )

    async def _exhaust(self, claimed: AssignmentState, reason: str, report: SweepReport) -> None:
        if not await self._states.mark_exhausted(claimed):
            await self._uow.rollback()
            report.stale += 1
            return
        await self._uow.commit()
        report.exhausted += 1
        logger.warning("Lead %s: rotation exhausted (%s), needs manual review", claimed.lead_id, reason)
        await self._events.publish(
            RotationExhausted(lead_id=claimed.lead_id, assignee_id=claimed.assignee_id, reason=reason)
        )

    async def _active_pool(self, rule: AssignmentRule) -> list[str]:
        """Rotation pool ids that resolve to active users, in configured order."""
        users = await self._directory.get_many(list(rule.rotation_pool))
        active = {u.id for u in users if u.is_active}
        return [uid for uid in rule.rotation_pool if uid in active]

    async def _choose_successor(
        self, rule: AssignmentRule, state: AssignmentState, now: datetime
    ) -> tuple[str | None, DomainEvent | None]:
        current = state.assignee_id

        if rule.rotation_type == RotationType.MANAGER:
            try:
                manager = await self._directory.get_manager(current)
            except Exception as e:
                logger.warning("Lead %s: manager lookup failed (%s)", state.lead_id, e)
                return None, DegradedMode(
                    lead_id=state.lead_id, rule_id=rule.id,
                    component="user_directory", detail=f"manager lookup failed: {e}",
                )
            if manager is None or not manager.is_active or manager.id == current:
                return None, None
            return manager.id, None

        if rule.rotation_type == RotationType.SELECTIVE or rule.rotation_pool:
            try:
                pool = await self._active_pool(rule)
            except Exception as e:
                logger.warning("Lead %s: cannot resolve rotation pool (%s)", state.lead_id, e)
                return None, DegradedMode(
                    lead_id=state.lead_id, rule_id=rule.id,
                    component="user_directory", detail=f"rotation pool lookup failed: {e}",
                )
            if rule.rotation_type == RotationType.SELECTIVE:
                user_id = await self._distribution.pick_from_pool(
                    cursor_key(rule.id, "rotation"), pool, exclude={current}
                )
                return user_id, None
            candidates = [uid for uid in pool if uid != current]
            return (self._rng.choice(candidates) if candidates else None), None

        pick = await self._distribution.pick(rule, now, exclude={current})
        degraded = None
        if pick.degraded:
            degraded = DegradedMode(
                lead_id=state.lead_id, rule_id=rule.id,
                component=pick.component or "distribution", detail=pick.detail or "",
            )
        return pick.user_id, degraded
