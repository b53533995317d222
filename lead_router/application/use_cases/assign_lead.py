"""AssignmentCoordinator — the engine's single entry point for lead routing.

Pipeline for one lead:
1. Load active rules for the lead's entity and branch
2. RuleMatcher picks the first matching rule (or none → Unassigned)
3. DistributionStrategy picks an assignee (or none → Unassigned)
4. Persist the new AssignmentState, arming the SLA deadline if enabled
5. Commit, then emit AssignmentDecided
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from lead_router.application.ports.assignment_state_repo import AssignmentStateRepository
from lead_router.application.ports.event_sink import EventSink
from lead_router.application.ports.lead_store import LeadStore
from lead_router.application.ports.rule_repo import RuleRepository
from lead_router.application.ports.unit_of_work import UnitOfWork
from lead_router.application.ports.user_directory import UserDirectory
from lead_router.application.use_cases.distribution import DistributionService
from lead_router.application.use_cases.rotation_sweep import RotationScheduler
from lead_router.domain.entities.assignment_state import AssignmentState
from lead_router.domain.entities.events import AssignmentDecided, DegradedMode, DomainEvent
from lead_router.domain.entities.lead import Lead
from lead_router.domain.exceptions import LeadNotFoundError, UnknownUserError
from lead_router.domain.policies.rule_matching import select_rule
from lead_router.domain.value_objects.enums import AssignmentSource, DecisionReason

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AssignmentDecision:
    """Result of routing one lead."""

    lead_id: str
    rule_id: str | None
    assignee_id: str | None
    reason: DecisionReason
    sla_deadline_at: datetime | None = None
    degraded: bool = False
    error: str | None = None

    @property
    def is_assigned(self) -> bool:
        return self.assignee_id is not None


class AssignmentCoordinator:
    """Orchestrates rule matching, distribution, persistence and rotation arming."""

    def __init__(
        self,
        rule_repo: RuleRepository,
        state_repo: AssignmentStateRepository,
        lead_store: LeadStore,
        directory: UserDirectory,
        distribution: DistributionService,
        scheduler: RotationScheduler,
        events: EventSink,
        uow: UnitOfWork,
        clock=_utcnow,
    ):
        self._rules = rule_repo
        self._states = state_repo
        self._leads = lead_store
        self._directory = directory
        self._distribution = distribution
        self._scheduler = scheduler
        self._events = events
        self._uow = uow
        self._clock = clock

    async def assign_lead(self, lead: Lead, now: datetime | None = None) -> AssignmentDecision:
        """Route a lead. Never raises: faults become an Unassigned decision."""
        now = now or self._clock()
        pending: list[DomainEvent] = []
        rule_id: str | None = None

        try:
            rules = await self._rules.list_rules(
                entity=lead.entity, branch_id=lead.branch_id, active_only=True
            )
            rule = select_rule(lead, rules)
            if rule is None:
                logger.info("Lead %s: no rule matched → unassigned", lead.id)
                decision = AssignmentDecision(
                    lead_id=lead.id, rule_id=None, assignee_id=None,
                    reason=DecisionReason.NO_RULE_MATCHED,
                )
            else:
                rule_id = rule.id
                pick = await self._distribution.pick(rule, now)
                if pick.degraded:
                    pending.append(
                        DegradedMode(
                            lead_id=lead.id, rule_id=rule.id,
                            component=pick.component or "distribution", detail=pick.detail or "",
                        )
                    )

                if pick.user_id is None:
                    await self._uow.rollback()
                    logger.info("Lead %s: rule %s has an empty candidate pool → unassigned", lead.id, rule.id)
                    decision = AssignmentDecision(
                        lead_id=lead.id, rule_id=rule.id, assignee_id=None,
                        reason=pick.reason, degraded=pick.degraded,
                    )
                else:
                    state = AssignmentState(
                        id=None,
                        lead_id=lead.id,
                        assignee_id=pick.user_id,
                        assigned_at=now,
                        applied_rule_id=rule.id,
                        sla_deadline_at=self._scheduler.deadline_for(rule, now),
                        source=AssignmentSource.RULE,
                    )
                    await self._states.replace_current(state, now)
                    await self._uow.commit()
                    logger.info(
                        "Lead %s → %s (rule %s '%s', deadline %s)",
                        lead.id, pick.user_id, rule.id, rule.name,
                        state.sla_deadline_at.isoformat() if state.sla_deadline_at else "none",
                    )
                    decision = AssignmentDecision(
                        lead_id=lead.id, rule_id=rule.id, assignee_id=pick.user_id,
                        reason=pick.reason, sla_deadline_at=state.sla_deadline_at,
                        degraded=pick.degraded,
                    )

        except Exception as e:
            logger.exception("Error assigning lead %s", lead.id)
            await self._uow.rollback()
            pending.append(
                DegradedMode(
                    lead_id=lead.id, rule_id=rule_id,
                    component="assignment_coordinator", detail=str(e),
                )
            )
            decision = AssignmentDecision(
                lead_id=lead.id, rule_id=rule_id, assignee_id=None,
                reason=DecisionReason.ENGINE_ERROR, degraded=True, error=str(e),
            )

        for event in pending:
            await self._events.publish(event)
        await self._events.publish(
            AssignmentDecided(
                lead_id=decision.lead_id,
                rule_id=decision.rule_id,
                assignee_id=decision.assignee_id,
                reason=decision.reason.value,
            )
        )
        return decision

    async def handle_lead_created(self, lead_id: str, now: datetime | None = None) -> AssignmentDecision:
        lead = await self._leads.get_by_id(lead_id)
        if lead is None:
            raise LeadNotFoundError(lead_id)
        return await self.assign_lead(lead, now)

    async def handle_lead_updated(self, lead_id: str, now: datetime | None = None) -> AssignmentDecision:
        """Re-route only leads that are still unassigned; owners are kept."""
        lead = await self._leads.get_by_id(lead_id)
        if lead is None:
            raise LeadNotFoundError(lead_id)
        current = await self._states.get_current(lead_id)
        if current is not None:
            return AssignmentDecision(
                lead_id=lead_id,
                rule_id=current.applied_rule_id,
                assignee_id=current.assignee_id,
                reason=DecisionReason.ALREADY_ASSIGNED,
                sla_deadline_at=current.sla_deadline_at,
            )
        return await self.assign_lead(lead, now)

    async def manual_override(
        self, lead_id: str, new_assignee_id: str, now: datetime | None = None
    ) -> AssignmentState:
        """Hand a lead to ``new_assignee_id``, cancelling any rotation in flight.

        The superseded state's version is bumped, so a sweep worker holding
        the old version discards its result. No deadline is armed until
        :meth:`RotationScheduler.rearm` is called explicitly.
        """
        now = now or self._clock()
        await self._require_active_user(new_assignee_id)
        if await self._leads.get_by_id(lead_id) is None:
            raise LeadNotFoundError(lead_id)

        state = await self._override_one(lead_id, new_assignee_id, now, AssignmentSource.MANUAL)
        await self._uow.commit()
        logger.info("Lead %s manually assigned to %s", lead_id, new_assignee_id)
        await self._events.publish(
            AssignmentDecided(
                lead_id=lead_id, rule_id=state.applied_rule_id,
                assignee_id=new_assignee_id, reason=DecisionReason.MANUAL_OVERRIDE.value,
            )
        )
        return state

    async def assign_leads(
        self, lead_ids: list[str], assignee_id: str, now: datetime | None = None
    ) -> int:
        """Bulk manual override bypassing rule matching. Unknown lead ids are skipped."""
        now = now or self._clock()
        await self._require_active_user(assignee_id)

        unique_ids = list(dict.fromkeys(lead_ids))
        existing = await self._leads.existing_ids(unique_ids)
        targets = [lid for lid in unique_ids if lid in existing]
        if len(targets) < len(unique_ids):
            logger.warning(
                "Bulk assign: %d of %d lead ids not found, skipped",
                len(unique_ids) - len(targets), len(unique_ids),
            )

        states = []
        try:
            for lead_id in targets:
                states.append(await self._override_one(lead_id, assignee_id, now, AssignmentSource.BULK))
            await self._uow.commit()
        except Exception:
            await self._uow.rollback()
            raise

        logger.info("Bulk assigned %d leads to %s", len(states), assignee_id)
        for state in states:
            await self._events.publish(
                AssignmentDecided(
                    lead_id=state.lead_id, rule_id=state.applied_rule_id,
                    assignee_id=assignee_id, reason=DecisionReason.BULK_ASSIGN.value,
                )
            )
        return len(states)

    async def record_activity(
        self, lead_id: str, occurred_at: datetime | None = None
    ) -> AssignmentState | None:
        """Consume LeadActivityLogged: the owner acted, so the SLA clock stops."""
        if await self._leads.get_by_id(lead_id) is None:
            raise LeadNotFoundError(lead_id)
        occurred_at = occurred_at or self._clock()
        await self._leads.record_activity(lead_id, occurred_at)
        state = await self._states.record_activity(lead_id, occurred_at)
        await self._uow.commit()
        if state is not None:
            logger.info("Lead %s: activity at %s cancelled SLA clock", lead_id, occurred_at.isoformat())
        return state

    async def current_assignment(self, lead_id: str) -> AssignmentState | None:
        return await self._states.get_current(lead_id)

    async def history(self, lead_id: str) -> list[AssignmentState]:
        return await self._states.history(lead_id)

    async def _override_one(
        self, lead_id: str, assignee_id: str, now: datetime, source: AssignmentSource
    ) -> AssignmentState:
        current = await self._states.get_current(lead_id)
        state = AssignmentState(
            id=None,
            lead_id=lead_id,
            assignee_id=assignee_id,
            assigned_at=now,
            applied_rule_id=current.applied_rule_id if current else None,
            sla_deadline_at=None,
            rotation_count=0,
            source=source,
        )
        return await self._states.replace_current(state, now)

    async def _require_active_user(self, user_id: str) -> None:
        user = await self._directory.get_by_id(user_id)
        if user is None or not user.is_active:
            raise UnknownUserError(user_id)
