"""Distribution strategies — turn a matched rule into a concrete assignee."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Collection
from dataclasses import dataclass
from datetime import datetime

from lead_router.application.ports.assignment_state_repo import AssignmentStateRepository
from lead_router.application.ports.performance_port import PerformanceAggregate
from lead_router.application.ports.rotation_cursor_repo import RotationCursorRepository
from lead_router.application.ports.user_directory import UserDirectory
from lead_router.domain.entities.rotation_cursor import cursor_key
from lead_router.domain.entities.rule import AssignmentRule
from lead_router.domain.entities.sales_user import SalesUser
from lead_router.domain.policies.round_robin import pick_next
from lead_router.domain.policies.sla import start_of_day
from lead_router.domain.policies.top_performer import pick_top_performer, rank_window_start
from lead_router.domain.value_objects.assign_target import (
    RolePool,
    SpecificUser,
    TopPerformerPool,
    UserPool,
)
from lead_router.domain.value_objects.enums import DecisionReason, DistributionType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pick:
    """Outcome of one distribution attempt."""

    user_id: str | None
    reason: DecisionReason
    degraded: bool = False
    component: str | None = None
    detail: str | None = None

    @classmethod
    def empty(cls, degraded: bool = False, component: str | None = None, detail: str | None = None) -> "Pick":
        return cls(
            user_id=None,
            reason=DecisionReason.EMPTY_POOL,
            degraded=degraded,
            component=component,
            detail=detail,
        )


class CursorPicker:
    """Quota-aware round robin over a pool, backed by a persisted cursor."""

    def __init__(self, cursors: RotationCursorRepository, states: AssignmentStateRepository):
        self._cursors = cursors
        self._states = states

    async def users_at_quota(self, users: list[SalesUser], now: datetime) -> set[str]:
        limited = [u for u in users if u.has_quota()]
        if not limited:
            return set()
        counts = await self._states.count_assigned_since(
            [u.id for u in limited], start_of_day(now)
        )
        return {u.id for u in limited if counts.get(u.id, 0) >= u.daily_lead_quota}

    async def pick(
        self,
        key: str,
        pool: list[str],
        exclude: Collection[str] = (),
        at_quota: Collection[str] = (),
    ) -> str | None:
        if not pool:
            return None
        index = await self._cursors.advance(
            key, pool, lambda cursor: pick_next(pool, cursor, exclude, at_quota)
        )
        return pool[index] if index is not None else None


class DistributionStrategy(ABC):
    @abstractmethod
    async def pick(
        self, rule: AssignmentRule, now: datetime, exclude: Collection[str] = ()
    ) -> Pick:
        ...


class SpecificUserStrategy(DistributionStrategy):
    """Always the configured user; never touches a cursor."""

    async def pick(self, rule, now, exclude=()):
        target = rule.assign_to
        if not isinstance(target, SpecificUser) or not target.user_id:
            return Pick.empty()
        if target.user_id in exclude:
            return Pick.empty()
        return Pick(user_id=target.user_id, reason=DecisionReason.RULE_MATCHED)


class RoundRobinUsersStrategy(DistributionStrategy):
    """Round robin over an explicit user list, skipping users at daily quota."""

    def __init__(self, directory: UserDirectory, picker: CursorPicker):
        self._directory = directory
        self._picker = picker

    async def pick(self, rule, now, exclude=()):
        target = rule.assign_to
        if not isinstance(target, UserPool) or not target.user_ids:
            return Pick.empty()

        key = cursor_key(rule.id, "users")
        try:
            users = await self._directory.get_many(list(target.user_ids))
        except Exception as e:
            # Directory down: plain round robin over the configured ids
            logger.warning("Rule %s: user directory unavailable (%s), ignoring quotas", rule.id, e)
            user_id = await self._picker.pick(key, list(target.user_ids), exclude)
            return Pick(
                user_id=user_id,
                reason=DecisionReason.DEGRADED_FALLBACK if user_id else DecisionReason.EMPTY_POOL,
                degraded=True,
                component="user_directory",
                detail=f"directory unavailable: {e}",
            )

        active = {u.id: u for u in users if u.is_active}
        pool = [uid for uid in target.user_ids if uid in active]
        if not pool:
            return Pick.empty()

        at_quota = await self._picker.users_at_quota(list(active.values()), now)
        user_id = await self._picker.pick(key, pool, exclude, at_quota)
        if user_id is None:
            return Pick.empty()
        return Pick(user_id=user_id, reason=DecisionReason.RULE_MATCHED)


class RoundRobinByRoleStrategy(DistributionStrategy):
    """Round robin over active users holding a role in the rule's branch."""

    def __init__(self, directory: UserDirectory, picker: CursorPicker):
        self._directory = directory
        self._picker = picker

    async def pick(self, rule, now, exclude=()):
        target = rule.assign_to
        if not isinstance(target, RolePool) or not target.role:
            return Pick.empty()

        try:
            users = await self._directory.list_active_by_role(target.role, rule.branch_id)
        except Exception as e:
            logger.warning("Rule %s: cannot list role '%s' (%s)", rule.id, target.role, e)
            return Pick.empty(
                degraded=True,
                component="user_directory",
                detail=f"directory unavailable: {e}",
            )

        pool = [u.id for u in users]
        if not pool:
            return Pick.empty()

        at_quota = await self._picker.users_at_quota(users, now)
        user_id = await self._picker.pick(
            cursor_key(rule.id, f"role-{target.role}"), pool, exclude, at_quota
        )
        if user_id is None:
            return Pick.empty()
        return Pick(user_id=user_id, reason=DecisionReason.RULE_MATCHED)


class TopPerformerStrategy(DistributionStrategy):
    """Best trailing closed-won record, degrading to round robin on timeout."""

    def __init__(
        self,
        directory: UserDirectory,
        performance: PerformanceAggregate,
        picker: CursorPicker,
        timeout_seconds: float,
        window_days: int,
    ):
        self._directory = directory
        self._performance = performance
        self._picker = picker
        self._timeout = timeout_seconds
        self._window_days = window_days

    async def _candidates(self, rule: AssignmentRule, target: TopPerformerPool) -> list[SalesUser]:
        if target.user_ids:
            users = await self._directory.get_many(list(target.user_ids))
            order = {uid: i for i, uid in enumerate(target.user_ids)}
            return sorted((u for u in users if u.is_active), key=lambda u: order[u.id])
        return await self._directory.list_active_by_role(target.role, rule.branch_id)

    async def pick(self, rule, now, exclude=()):
        target = rule.assign_to
        if not isinstance(target, TopPerformerPool):
            return Pick.empty()

        try:
            candidates = await self._candidates(rule, target)
        except Exception as e:
            logger.warning("Rule %s: cannot resolve top performer pool (%s)", rule.id, e)
            return Pick.empty(
                degraded=True,
                component="user_directory",
                detail=f"directory unavailable: {e}",
            )

        candidates = [u for u in candidates if u.id not in exclude]
        if not candidates:
            return Pick.empty()

        try:
            stats = await asyncio.wait_for(
                self._performance.get_stats(
                    [u.id for u in candidates], rank_window_start(now, self._window_days)
                ),
                timeout=self._timeout,
            )
        except Exception as e:
            detail = (
                f"performance lookup timed out after {self._timeout}s"
                if isinstance(e, asyncio.TimeoutError)
                else f"performance lookup failed: {e}"
            )
            logger.warning("Rule %s: %s, falling back to round robin", rule.id, detail)
            at_quota = await self._picker.users_at_quota(candidates, now)
            user_id = await self._picker.pick(
                cursor_key(rule.id, "top-performer"), [u.id for u in candidates], exclude, at_quota
            )
            return Pick(
                user_id=user_id,
                reason=DecisionReason.DEGRADED_FALLBACK if user_id else DecisionReason.EMPTY_POOL,
                degraded=True,
                component="performance_aggregate",
                detail=detail,
            )

        best = pick_top_performer(candidates, stats)
        if best is None:
            return Pick.empty()
        return Pick(user_id=best.id, reason=DecisionReason.RULE_MATCHED)


class DistributionService:
    """Dispatches a rule to the strategy for its distribution type."""

    def __init__(
        self,
        directory: UserDirectory,
        cursors: RotationCursorRepository,
        states: AssignmentStateRepository,
        performance: PerformanceAggregate,
        performance_timeout_seconds: float = 2.0,
        performance_window_days: int = 30,
    ):
        self._picker = CursorPicker(cursors, states)
        self._strategies: dict[DistributionType, DistributionStrategy] = {
            DistributionType.SPECIFIC_USER: SpecificUserStrategy(),
            DistributionType.CAMPAIGN_USERS: RoundRobinUsersStrategy(directory, self._picker),
            DistributionType.ROUND_ROBIN_ROLE: RoundRobinByRoleStrategy(directory, self._picker),
            DistributionType.TOP_PERFORMER: TopPerformerStrategy(
                directory,
                performance,
                self._picker,
                timeout_seconds=performance_timeout_seconds,
                window_days=performance_window_days,
            ),
        }

    async def pick(
        self, rule: AssignmentRule, now: datetime, exclude: Collection[str] = ()
    ) -> Pick:
        return await self._strategies[rule.distribution_type].pick(rule, now, exclude)

    async def pick_from_pool(
        self, key: str, user_ids: list[str], exclude: Collection[str] = ()
    ) -> str | None:
        """Plain round robin over an ad-hoc pool (used by selective rotation)."""
        return await self._picker.pick(key, user_ids, exclude)
