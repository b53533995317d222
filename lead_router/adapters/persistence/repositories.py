"""SQLAlchemy repository implementations."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from sqlalchemy import and_, distinct, func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lead_router.adapters.persistence.models import (
    AssignmentRuleModel,
    AssignmentStateModel,
    LeadActivityModel,
    LeadModel,
    RotationCursorModel,
    SalesUserModel,
)
from lead_router.application.ports.assignment_state_repo import AssignmentStateRepository
from lead_router.application.ports.lead_store import LeadStore
from lead_router.application.ports.performance_port import PerformanceAggregate
from lead_router.application.ports.rotation_cursor_repo import RotationCursorRepository
from lead_router.application.ports.rule_repo import RuleRepository
from lead_router.application.ports.unit_of_work import UnitOfWork
from lead_router.application.ports.user_directory import UserDirectory
from lead_router.domain.entities.assignment_state import AssignmentState
from lead_router.domain.entities.lead import Lead
from lead_router.domain.entities.rotation_cursor import RotationCursor
from lead_router.domain.entities.rule import AssignmentRule, Criterion
from lead_router.domain.entities.sales_user import SalesUser
from lead_router.domain.policies.round_robin import advance
from lead_router.domain.policies.top_performer import PerformanceStats
from lead_router.domain.value_objects.assign_target import (
    target_from_payload,
    target_to_payload,
)
from lead_router.domain.value_objects.enums import (
    AssignmentSource,
    AssignmentStatus,
    DistributionType,
    EntityType,
    Operator,
    RotationType,
)

# ─── Mappers ─────────────────────────────────────────────────────────


def _rule_to_domain(m: AssignmentRuleModel) -> AssignmentRule:
    distribution_type = DistributionType(m.distribution_type)
    return AssignmentRule(
        id=m.id,
        name=m.name,
        description=m.description,
        entity=EntityType(m.entity),
        priority=m.priority,
        criteria=[
            Criterion(field=c["field"], operator=Operator(c["operator"]), value=str(c.get("value", "")))
            for c in (m.criteria or [])
        ],
        distribution_type=distribution_type,
        assign_to=target_from_payload(distribution_type, m.assign_to),
        is_active=m.is_active,
        branch_id=m.branch_id,
        enable_rotation=m.enable_rotation,
        time_limit_minutes=m.time_limit_minutes,
        rotation_type=RotationType(m.rotation_type),
        rotation_pool=list(m.rotation_pool or []),
        created_at=m.created_at,
    )


def _criteria_to_json(rule: AssignmentRule) -> list[dict]:
    return [
        {"field": c.field, "operator": c.operator.value, "value": c.value}
        for c in rule.criteria
    ]


def _user_to_domain(m: SalesUserModel) -> SalesUser:
    return SalesUser(
        id=m.id,
        name=m.name,
        role=m.role,
        branch_id=m.branch_id,
        reports_to_id=m.reports_to_id,
        is_active=m.is_active,
        daily_lead_quota=m.daily_lead_quota,
        created_at=m.created_at,
    )


def _lead_to_domain(m: LeadModel) -> Lead:
    return Lead(
        id=m.id,
        entity=EntityType(m.entity),
        source=m.source,
        campaign_name=m.campaign_name,
        country=m.country,
        state=m.state,
        industry=m.industry,
        lead_score=m.lead_score,
        branch_id=m.branch_id,
        created_at=m.created_at,
    )


def _state_to_domain(m: AssignmentStateModel) -> AssignmentState:
    return AssignmentState(
        id=m.id,
        lead_id=m.lead_id,
        assignee_id=m.assignee_id,
        assigned_at=m.assigned_at,
        applied_rule_id=m.applied_rule_id,
        sla_deadline_at=m.sla_deadline_at,
        rotation_count=m.rotation_count,
        status=AssignmentStatus(m.status),
        source=AssignmentSource(m.source),
        version=m.version,
        claimed_at=m.claimed_at,
        last_activity_at=m.last_activity_at,
        is_current=m.is_current,
        superseded_at=m.superseded_at,
    )


def _cursor_to_domain(m: RotationCursorModel) -> RotationCursor:
    return RotationCursor(
        key=m.key,
        last_assigned_index=m.last_assigned_index,
        last_assigned_user_id=m.last_assigned_user_id,
        version=m.version,
    )


# ─── Repositories ────────────────────────────────────────────────────


class SqlUnitOfWork(UnitOfWork):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def commit(self) -> None:
        await self._s.commit()

    async def rollback(self) -> None:
        await self._s.rollback()


class SqlRuleRepository(RuleRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_by_id(self, rule_id: str) -> AssignmentRule | None:
        m = await self._s.get(AssignmentRuleModel, rule_id)
        return _rule_to_domain(m) if m else None

    async def list_rules(
        self,
        entity: EntityType | None = None,
        branch_id: str | None = None,
        active_only: bool = False,
    ) -> list[AssignmentRule]:
        stmt = select(AssignmentRuleModel)
        if entity is not None:
            stmt = stmt.where(AssignmentRuleModel.entity == entity.value)
        if branch_id is not None:
            stmt = stmt.where(
                or_(
                    AssignmentRuleModel.branch_id.is_(None),
                    AssignmentRuleModel.branch_id == branch_id,
                )
            )
        if active_only:
            stmt = stmt.where(AssignmentRuleModel.is_active.is_(True))
        stmt = stmt.order_by(
            AssignmentRuleModel.priority,
            AssignmentRuleModel.created_at,
            AssignmentRuleModel.id,
        )
        result = await self._s.execute(stmt)
        return [_rule_to_domain(m) for m in result.scalars()]

    async def save(self, rule: AssignmentRule) -> AssignmentRule:
        m = AssignmentRuleModel(
            id=rule.id,
            name=rule.name,
            description=rule.description,
            entity=rule.entity.value,
            priority=rule.priority,
            criteria=_criteria_to_json(rule),
            distribution_type=rule.distribution_type.value,
            assign_to=target_to_payload(rule.assign_to),
            is_active=rule.is_active,
            branch_id=rule.branch_id,
            enable_rotation=rule.enable_rotation,
            time_limit_minutes=rule.time_limit_minutes,
            rotation_type=rule.rotation_type.value,
            rotation_pool=list(rule.rotation_pool),
            created_at=rule.created_at,
        )
        self._s.add(m)
        await self._s.flush()
        rule.created_at = m.created_at
        return rule

    async def update(self, rule: AssignmentRule) -> AssignmentRule:
        await self._s.execute(
            update(AssignmentRuleModel)
            .where(AssignmentRuleModel.id == rule.id)
            .values(
                name=rule.name,
                description=rule.description,
                entity=rule.entity.value,
                priority=rule.priority,
                criteria=_criteria_to_json(rule),
                distribution_type=rule.distribution_type.value,
                assign_to=target_to_payload(rule.assign_to),
                is_active=rule.is_active,
                branch_id=rule.branch_id,
                enable_rotation=rule.enable_rotation,
                time_limit_minutes=rule.time_limit_minutes,
                rotation_type=rule.rotation_type.value,
                rotation_pool=list(rule.rotation_pool),
            )
        )
        await self._s.flush()
        return rule

    async def delete(self, rule_id: str) -> bool:
        m = await self._s.get(AssignmentRuleModel, rule_id)
        if m is None:
            return False
        await self._s.delete(m)
        await self._s.flush()
        return True

    async def set_priorities(self, priorities: dict[str, int]) -> None:
        for rule_id, priority in priorities.items():
            await self._s.execute(
                update(AssignmentRuleModel)
                .where(AssignmentRuleModel.id == rule_id)
                .values(priority=priority)
            )
        await self._s.flush()


class SqlUserDirectory(UserDirectory):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_by_id(self, user_id: str) -> SalesUser | None:
        m = await self._s.get(SalesUserModel, user_id)
        return _user_to_domain(m) if m else None

    async def get_many(self, user_ids: list[str]) -> list[SalesUser]:
        if not user_ids:
            return []
        result = await self._s.execute(
            select(SalesUserModel).where(SalesUserModel.id.in_(user_ids))
        )
        return [_user_to_domain(m) for m in result.scalars()]

    async def list_active_by_role(self, role: str, branch_id: str | None = None) -> list[SalesUser]:
        stmt = select(SalesUserModel).where(
            SalesUserModel.role == role,
            SalesUserModel.is_active.is_(True),
        )
        if branch_id is not None:
            stmt = stmt.where(SalesUserModel.branch_id == branch_id)
        result = await self._s.execute(
            stmt.order_by(SalesUserModel.created_at, SalesUserModel.id)
        )
        return [_user_to_domain(m) for m in result.scalars()]

    async def get_manager(self, user_id: str) -> SalesUser | None:
        user = await self._s.get(SalesUserModel, user_id)
        if user is None or user.reports_to_id is None:
            return None
        manager = await self._s.get(SalesUserModel, user.reports_to_id)
        return _user_to_domain(manager) if manager else None


class SqlLeadStore(LeadStore):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_by_id(self, lead_id: str) -> Lead | None:
        m = await self._s.get(LeadModel, lead_id)
        return _lead_to_domain(m) if m else None

    async def existing_ids(self, lead_ids: list[str]) -> set[str]:
        if not lead_ids:
            return set()
        result = await self._s.execute(select(LeadModel.id).where(LeadModel.id.in_(lead_ids)))
        return set(result.scalars())

    async def record_activity(self, lead_id: str, occurred_at: datetime) -> None:
        self._s.add(LeadActivityModel(lead_id=lead_id, occurred_at=occurred_at))
        await self._s.flush()

    async def last_activity_at(self, lead_id: str) -> datetime | None:
        result = await self._s.execute(
            select(func.max(LeadActivityModel.occurred_at)).where(
                LeadActivityModel.lead_id == lead_id
            )
        )
        return result.scalar_one_or_none()


class SqlAssignmentStateRepository(AssignmentStateRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    def _guarded(self, state: AssignmentState):
        """UPDATE targeting ``state`` only if nobody changed it since it was read."""
        return update(AssignmentStateModel).where(
            AssignmentStateModel.id == state.id,
            AssignmentStateModel.version == state.version,
            AssignmentStateModel.is_current.is_(True),
        )

    async def _insert(self, state: AssignmentState) -> AssignmentState:
        m = AssignmentStateModel(
            lead_id=state.lead_id,
            applied_rule_id=state.applied_rule_id,
            assignee_id=state.assignee_id,
            assigned_at=state.assigned_at,
            sla_deadline_at=state.sla_deadline_at,
            rotation_count=state.rotation_count,
            status=state.status.value,
            source=state.source.value,
            version=0,
            is_current=True,
        )
        self._s.add(m)
        await self._s.flush()
        return _state_to_domain(m)

    async def get_current(self, lead_id: str) -> AssignmentState | None:
        result = await self._s.execute(
            select(AssignmentStateModel)
            .where(
                AssignmentStateModel.lead_id == lead_id,
                AssignmentStateModel.is_current.is_(True),
            )
            .execution_options(populate_existing=True)
        )
        m = result.scalar_one_or_none()
        return _state_to_domain(m) if m else None

    async def history(self, lead_id: str) -> list[AssignmentState]:
        result = await self._s.execute(
            select(AssignmentStateModel)
            .where(AssignmentStateModel.lead_id == lead_id)
            .order_by(AssignmentStateModel.id)
        )
        return [_state_to_domain(m) for m in result.scalars()]

    async def replace_current(self, state: AssignmentState, now: datetime) -> AssignmentState:
        await self._s.execute(
            update(AssignmentStateModel)
            .where(
                AssignmentStateModel.lead_id == state.lead_id,
                AssignmentStateModel.is_current.is_(True),
            )
            .values(
                is_current=False,
                superseded_at=now,
                version=AssignmentStateModel.version + 1,
            )
        )
        # Flush the demotion first so the partial unique index never sees two current rows
        await self._s.flush()
        return await self._insert(state)

    async def supersede_if_version(
        self, current: AssignmentState, successor: AssignmentState, now: datetime
    ) -> AssignmentState | None:
        result = await self._s.execute(
            self._guarded(current).values(
                is_current=False,
                superseded_at=now,
                version=AssignmentStateModel.version + 1,
            )
        )
        if result.rowcount == 0:
            return None
        return await self._insert(successor)

    async def claim(self, state: AssignmentState, now: datetime) -> AssignmentState | None:
        result = await self._s.execute(
            self._guarded(state)
            .where(
                AssignmentStateModel.status.in_(
                    [AssignmentStatus.ASSIGNED.value, AssignmentStatus.ROTATION_PENDING.value]
                )
            )
            .values(
                status=AssignmentStatus.ROTATION_PENDING.value,
                claimed_at=now,
                version=AssignmentStateModel.version + 1,
            )
        )
        if result.rowcount == 0:
            return None
        return state.copy(
            status=AssignmentStatus.ROTATION_PENDING,
            claimed_at=now,
            version=state.version + 1,
        )

    async def mark_exhausted(self, state: AssignmentState) -> bool:
        result = await self._s.execute(
            self._guarded(state).values(
                status=AssignmentStatus.ROTATION_EXHAUSTED.value,
                sla_deadline_at=None,
                version=AssignmentStateModel.version + 1,
            )
        )
        return result.rowcount > 0

    async def set_deadline(self, state: AssignmentState, deadline: datetime | None) -> bool:
        result = await self._s.execute(
            self._guarded(state).values(
                status=AssignmentStatus.ASSIGNED.value,
                sla_deadline_at=deadline,
                claimed_at=None,
                version=AssignmentStateModel.version + 1,
            )
        )
        return result.rowcount > 0

    async def record_activity(self, lead_id: str, occurred_at: datetime) -> AssignmentState | None:
        result = await self._s.execute(
            select(AssignmentStateModel)
            .where(
                AssignmentStateModel.lead_id == lead_id,
                AssignmentStateModel.is_current.is_(True),
            )
            .with_for_update()
        )
        m = result.scalar_one_or_none()
        if m is None:
            return None
        if occurred_at < m.assigned_at:
            return _state_to_domain(m)

        if m.last_activity_at is None or occurred_at > m.last_activity_at:
            m.last_activity_at = occurred_at
        if m.status != AssignmentStatus.ROTATION_EXHAUSTED.value:
            m.status = AssignmentStatus.ASSIGNED.value
            m.sla_deadline_at = None
            m.claimed_at = None
            m.version = m.version + 1
        await self._s.flush()
        return _state_to_domain(m)

    async def find_due(
        self, now: datetime, reclaim_before: datetime, limit: int
    ) -> list[AssignmentState]:
        result = await self._s.execute(
            select(AssignmentStateModel)
            .where(
                AssignmentStateModel.is_current.is_(True),
                or_(
                    and_(
                        AssignmentStateModel.status == AssignmentStatus.ASSIGNED.value,
                        AssignmentStateModel.sla_deadline_at <= now,
                    ),
                    and_(
                        AssignmentStateModel.status == AssignmentStatus.ROTATION_PENDING.value,
                        AssignmentStateModel.claimed_at <= reclaim_before,
                    ),
                ),
            )
            .order_by(AssignmentStateModel.sla_deadline_at, AssignmentStateModel.id)
            .limit(limit)
        )
        return [_state_to_domain(m) for m in result.scalars()]

    async def list_exhausted(self, limit: int = 100) -> list[AssignmentState]:
        result = await self._s.execute(
            select(AssignmentStateModel)
            .where(
                AssignmentStateModel.is_current.is_(True),
                AssignmentStateModel.status == AssignmentStatus.ROTATION_EXHAUSTED.value,
            )
            .order_by(AssignmentStateModel.assigned_at)
            .limit(limit)
        )
        return [_state_to_domain(m) for m in result.scalars()]

    async def count_assigned_since(self, user_ids: list[str], since: datetime) -> dict[str, int]:
        if not user_ids:
            return {}
        result = await self._s.execute(
            select(
                AssignmentStateModel.assignee_id,
                func.count(distinct(AssignmentStateModel.lead_id)),
            )
            .where(
                AssignmentStateModel.assignee_id.in_(user_ids),
                AssignmentStateModel.assigned_at >= since,
            )
            .group_by(AssignmentStateModel.assignee_id)
        )
        return {user_id: count for user_id, count in result.all()}


class SqlRotationCursorRepository(RotationCursorRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def _locked(self, key: str) -> RotationCursorModel | None:
        result = await self._s.execute(
            select(RotationCursorModel)
            .where(RotationCursorModel.key == key)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def get(self, key: str) -> RotationCursor | None:
        result = await self._s.execute(
            select(RotationCursorModel).where(RotationCursorModel.key == key)
        )
        m = result.scalar_one_or_none()
        return _cursor_to_domain(m) if m else None

    async def advance(
        self,
        key: str,
        pool: list[str],
        choose: Callable[[RotationCursor], int | None],
    ) -> int | None:
        m = await self._locked(key)
        if m is None:
            # Concurrent first use: only one insert wins, everyone then locks the row
            await self._s.execute(
                pg_insert(RotationCursorModel)
                .values(key=key, last_assigned_index=-1, version=0)
                .on_conflict_do_nothing(index_elements=["key"])
            )
            m = await self._locked(key)

        cursor = _cursor_to_domain(m)
        index = choose(cursor)
        if index is None:
            return None

        moved = advance(cursor, pool, index)
        m.last_assigned_index = moved.last_assigned_index
        m.last_assigned_user_id = moved.last_assigned_user_id
        m.version = moved.version
        await self._s.flush()
        return index


class SqlPerformanceAggregate(PerformanceAggregate):
    """Closed-won and open-lead counts derived from leads and current owners.

    Runs in its own session: the lookup is cancelled on timeout, and a
    cancelled statement aborts the transaction it ran in. The caller's
    transaction must stay usable for the round-robin fallback.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_stats(self, user_ids: list[str], since: datetime) -> dict[str, PerformanceStats]:
        if not user_ids:
            return {}
        owner = AssignmentStateModel.assignee_id
        base = (
            select(owner, func.count(LeadModel.id))
            .join(LeadModel, LeadModel.id == AssignmentStateModel.lead_id)
            .where(
                AssignmentStateModel.is_current.is_(True),
                owner.in_(user_ids),
            )
            .group_by(owner)
        )
        async with self._session_factory() as session:
            won = await session.execute(
                base.where(LeadModel.status == "won", LeadModel.closed_at >= since)
            )
            won_counts = dict(won.all())
            open_ = await session.execute(base.where(LeadModel.status == "open"))
            open_counts = dict(open_.all())
        return {
            uid: PerformanceStats(
                user_id=uid,
                closed_won=won_counts.get(uid, 0),
                open_leads=open_counts.get(uid, 0),
            )
            for uid in user_ids
        }
