"""Pytest configuration and shared fixtures.

The engine is exercised through in-memory fakes of every port. Fakes that
hold state take part in :class:`FakeUnitOfWork`: ``commit`` checkpoints
their data and ``rollback`` restores the last checkpoint, which is enough
to observe that a cursor advance is undone together with its decision.
"""

from __future__ import annotations

import asyncio
import copy
import random
from datetime import datetime, timezone

import pytest

from lead_router.application.ports.assignment_state_repo import AssignmentStateRepository
from lead_router.application.ports.event_sink import EventSink
from lead_router.application.ports.lead_store import LeadStore
from lead_router.application.ports.performance_port import PerformanceAggregate
from lead_router.application.ports.rotation_cursor_repo import RotationCursorRepository
from lead_router.application.ports.rule_repo import RuleRepository
from lead_router.application.ports.unit_of_work import UnitOfWork
from lead_router.application.ports.user_directory import UserDirectory
from lead_router.application.use_cases.assign_lead import AssignmentCoordinator
from lead_router.application.use_cases.distribution import DistributionService
from lead_router.application.use_cases.rotation_sweep import RotationScheduler
from lead_router.domain.entities.assignment_state import AssignmentState
from lead_router.domain.entities.lead import Lead
from lead_router.domain.entities.rotation_cursor import RotationCursor
from lead_router.domain.entities.rule import AssignmentRule, Criterion
from lead_router.domain.entities.sales_user import SalesUser
from lead_router.domain.policies.round_robin import advance
from lead_router.domain.policies.top_performer import PerformanceStats
from lead_router.domain.value_objects.enums import AssignmentStatus, Operator

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


# ─── In-memory fakes ────────────────────────────────────────────────


class _Transactional:
    """Mixin: snapshot / restore of the attributes named in ``_tx_fields``."""

    _tx_fields: tuple[str, ...] = ()

    def checkpoint(self):
        self._saved = {name: copy.deepcopy(getattr(self, name)) for name in self._tx_fields}

    def restore(self):
        for name, value in self._saved.items():
            setattr(self, name, copy.deepcopy(value))


class FakeUnitOfWork(UnitOfWork):
    def __init__(self, *participants: _Transactional):
        self._participants = participants
        self.commits = 0
        self.rollbacks = 0
        self.fail_next_commit = False
        for p in participants:
            p.checkpoint()

    async def commit(self):
        if self.fail_next_commit:
            self.fail_next_commit = False
            raise RuntimeError("commit failed")
        for p in self._participants:
            p.checkpoint()
        self.commits += 1

    async def rollback(self):
        for p in self._participants:
            p.restore()
        self.rollbacks += 1


class FakeRuleRepo(_Transactional, RuleRepository):
    _tx_fields = ("rules",)

    def __init__(self):
        self.rules: dict[str, AssignmentRule] = {}
        self.fail = False

    async def get_by_id(self, rule_id):
        rule = self.rules.get(rule_id)
        return copy.deepcopy(rule) if rule else None

    async def list_rules(self, entity=None, branch_id=None, active_only=False):
        if self.fail:
            raise ConnectionError("rule store unavailable")
        rules = [
            r for r in self.rules.values()
            if (entity is None or r.entity == entity)
            and (branch_id is None or r.branch_id in (None, branch_id))
            and (r.is_active or not active_only)
        ]
        return [copy.deepcopy(r) for r in sorted(rules, key=lambda r: r.sort_key())]

    async def save(self, rule):
        self.rules[rule.id] = copy.deepcopy(rule)
        return rule

    async def update(self, rule):
        self.rules[rule.id] = copy.deepcopy(rule)
        return rule

    async def delete(self, rule_id):
        return self.rules.pop(rule_id, None) is not None

    async def set_priorities(self, priorities):
        for rule_id, priority in priorities.items():
            self.rules[rule_id].priority = priority


class FakeUserDirectory(UserDirectory):
    def __init__(self):
        self.users: dict[str, SalesUser] = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise ConnectionError("directory unavailable")

    async def get_by_id(self, user_id):
        self._check()
        return self.users.get(user_id)

    async def get_many(self, user_ids):
        self._check()
        return [self.users[uid] for uid in user_ids if uid in self.users]

    async def list_active_by_role(self, role, branch_id=None):
        self._check()
        users = [
            u for u in self.users.values()
            if u.role == role and u.is_active and (branch_id is None or u.branch_id == branch_id)
        ]
        return sorted(users, key=lambda u: (u.created_at or T0, u.id))

    async def get_manager(self, user_id):
        self._check()
        user = self.users.get(user_id)
        if user is None or user.reports_to_id is None:
            return None
        return self.users.get(user.reports_to_id)


class FakeLeadStore(_Transactional, LeadStore):
    _tx_fields = ("activities",)

    def __init__(self):
        self.leads: dict[str, Lead] = {}
        self.activities: dict[str, list[datetime]] = {}

    async def get_by_id(self, lead_id):
        return self.leads.get(lead_id)

    async def existing_ids(self, lead_ids):
        return {lid for lid in lead_ids if lid in self.leads}

    async def record_activity(self, lead_id, occurred_at):
        self.activities.setdefault(lead_id, []).append(occurred_at)

    async def last_activity_at(self, lead_id):
        times = self.activities.get(lead_id)
        return max(times) if times else None


class FakeStateRepo(_Transactional, AssignmentStateRepository):
    """Mirrors the version-guarded semantics of the SQL repository."""

    _tx_fields = ("rows", "_next_id")

    def __init__(self):
        self.rows: list[AssignmentState] = []
        self._next_id = 1

    def _current(self, lead_id):
        return next((r for r in self.rows if r.lead_id == lead_id and r.is_current), None)

    def _guarded(self, state):
        row = next((r for r in self.rows if r.id == state.id), None)
        if row is None or not row.is_current or row.version != state.version:
            return None
        return row

    def _set(self, row, **changes):
        updated = row.copy(**changes)
        self.rows[self.rows.index(row)] = updated
        return updated

    def _insert(self, state):
        row = state.copy(id=self._next_id, version=0, is_current=True, claimed_at=None)
        self._next_id += 1
        self.rows.append(row)
        return row.copy()

    async def get_current(self, lead_id):
        row = self._current(lead_id)
        return row.copy() if row else None

    async def history(self, lead_id):
        return [r.copy() for r in sorted(self.rows, key=lambda r: r.id) if r.lead_id == lead_id]

    async def replace_current(self, state, now):
        row = self._current(state.lead_id)
        if row is not None:
            self._set(row, is_current=False, superseded_at=now, version=row.version + 1)
        return self._insert(state)

    async def supersede_if_version(self, current, successor, now):
        row = self._guarded(current)
        if row is None:
            return None
        self._set(row, is_current=False, superseded_at=now, version=row.version + 1)
        return self._insert(successor)

    async def claim(self, state, now):
        row = self._guarded(state)
        if row is None or row.status == AssignmentStatus.ROTATION_EXHAUSTED:
            return None
        return self._set(
            row, status=AssignmentStatus.ROTATION_PENDING, claimed_at=now, version=row.version + 1
        ).copy()

    async def mark_exhausted(self, state):
        row = self._guarded(state)
        if row is None:
            return False
        self._set(
            row, status=AssignmentStatus.ROTATION_EXHAUSTED, sla_deadline_at=None,
            version=row.version + 1,
        )
        return True

    async def set_deadline(self, state, deadline):
        row = self._guarded(state)
        if row is None:
            return False
        self._set(
            row, status=AssignmentStatus.ASSIGNED, sla_deadline_at=deadline,
            claimed_at=None, version=row.version + 1,
        )
        return True

    async def record_activity(self, lead_id, occurred_at):
        row = self._current(lead_id)
        if row is None:
            return None
        if occurred_at < row.assigned_at:
            return row.copy()
        changes = {}
        if row.last_activity_at is None or occurred_at > row.last_activity_at:
            changes["last_activity_at"] = occurred_at
        if row.status != AssignmentStatus.ROTATION_EXHAUSTED:
            changes.update(
                status=AssignmentStatus.ASSIGNED, sla_deadline_at=None,
                claimed_at=None, version=row.version + 1,
            )
        return self._set(row, **changes).copy()

    async def find_due(self, now, reclaim_before, limit):
        due = [
            r for r in self.rows
            if r.is_current and (
                (r.status == AssignmentStatus.ASSIGNED
                 and r.sla_deadline_at is not None and r.sla_deadline_at <= now)
                or (r.status == AssignmentStatus.ROTATION_PENDING
                    and r.claimed_at is not None and r.claimed_at <= reclaim_before)
            )
        ]
        due.sort(key=lambda r: (r.sla_deadline_at or now, r.id))
        return [r.copy() for r in due[:limit]]

    async def list_exhausted(self, limit=100):
        rows = [
            r for r in self.rows
            if r.is_current and r.status == AssignmentStatus.ROTATION_EXHAUSTED
        ]
        return [r.copy() for r in rows[:limit]]

    async def count_assigned_since(self, user_ids, since):
        leads: dict[str, set[str]] = {}
        for r in self.rows:
            if r.assignee_id in user_ids and r.assigned_at >= since:
                leads.setdefault(r.assignee_id, set()).add(r.lead_id)
        return {uid: len(ids) for uid, ids in leads.items()}


class FakeCursorRepo(_Transactional, RotationCursorRepository):
    _tx_fields = ("cursors",)

    def __init__(self):
        self.cursors: dict[str, RotationCursor] = {}

    async def get(self, key):
        return self.cursors.get(key)

    async def advance(self, key, pool, choose):
        cursor = self.cursors.get(key) or RotationCursor(key=key)
        index = choose(cursor)
        if index is None:
            return None
        self.cursors[key] = advance(cursor, pool, index)
        return index


class FakePerformance(PerformanceAggregate):
    def __init__(self):
        self.stats: dict[str, PerformanceStats] = {}
        self.delay = 0.0
        self.error: Exception | None = None
        self.calls = 0

    async def get_stats(self, user_ids, since):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return {uid: self.stats.get(uid, PerformanceStats(user_id=uid)) for uid in user_ids}


class RecordingEventSink(EventSink):
    def __init__(self):
        self.events = []

    async def publish(self, event):
        self.events.append(event)

    @property
    def names(self) -> list[str]:
        return [e.name for e in self.events]

    def of_type(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]


# ─── World ──────────────────────────────────────────────────────────


class World:
    """All fakes wired together, plus builders for the use cases."""

    def __init__(self):
        self.rules = FakeRuleRepo()
        self.directory = FakeUserDirectory()
        self.leads = FakeLeadStore()
        self.states = FakeStateRepo()
        self.cursors = FakeCursorRepo()
        self.performance = FakePerformance()
        self.events = RecordingEventSink()
        self.uow = FakeUnitOfWork(self.rules, self.leads, self.states, self.cursors)
        self.rng = random.Random(7)

    def add_user(self, user_id, role="sales_rep", **kwargs) -> SalesUser:
        user = SalesUser(id=user_id, name=user_id.upper(), role=role, **kwargs)
        self.directory.users[user_id] = user
        return user

    def add_lead(self, lead_id, **kwargs) -> Lead:
        lead = Lead(id=lead_id, **kwargs)
        self.leads.leads[lead_id] = lead
        return lead

    def add_rule(self, rule_id, distribution_type, assign_to, criteria=(), **kwargs) -> AssignmentRule:
        kwargs.setdefault("created_at", T0)
        rule = AssignmentRule(
            id=rule_id,
            name=kwargs.pop("name", rule_id),
            distribution_type=distribution_type,
            assign_to=assign_to,
            criteria=[
                Criterion(field=f, operator=Operator(op), value=v) for f, op, v in criteria
            ],
            **kwargs,
        )
        self.rules.rules[rule_id] = rule
        self.rules.checkpoint()
        return rule

    def add_state(self, lead_id, assignee_id, **kwargs) -> AssignmentState:
        """Seed a current assignment directly, as if committed earlier."""
        kwargs.setdefault("assigned_at", T0)
        row = self.states._insert(AssignmentState(id=None, lead_id=lead_id, assignee_id=assignee_id, **kwargs))
        self.states.checkpoint()
        return row

    def distribution(self, timeout=0.05) -> DistributionService:
        return DistributionService(
            directory=self.directory,
            cursors=self.cursors,
            states=self.states,
            performance=self.performance,
            performance_timeout_seconds=timeout,
        )

    def scheduler(self, max_rotations=3, claim_ttl_seconds=300) -> RotationScheduler:
        return RotationScheduler(
            rule_repo=self.rules,
            state_repo=self.states,
            lead_store=self.leads,
            directory=self.directory,
            distribution=self.distribution(),
            events=self.events,
            uow=self.uow,
            max_rotations=max_rotations,
            claim_ttl_seconds=claim_ttl_seconds,
            rng=self.rng,
            clock=lambda: T0,
        )

    def coordinator(self, **scheduler_kwargs) -> AssignmentCoordinator:
        return AssignmentCoordinator(
            rule_repo=self.rules,
            state_repo=self.states,
            lead_store=self.leads,
            directory=self.directory,
            distribution=self.distribution(),
            scheduler=self.scheduler(**scheduler_kwargs),
            events=self.events,
            uow=self.uow,
            clock=lambda: T0,
        )


@pytest.fixture
def world() -> World:
    return World()


@pytest.fixture
def t0() -> datetime:
    return T0
