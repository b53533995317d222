"""FastAPI dependency injection — wires adapters into use cases."""

from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lead_router.adapters.events.audit_sink import (
    CompositeEventSink,
    LoggingEventSink,
    SqlAuditSink,
)
from lead_router.adapters.events.webhook_sink import WebhookEventSink
from lead_router.adapters.persistence.database import async_session_factory, get_session
from lead_router.adapters.persistence.repositories import (
    SqlAssignmentStateRepository,
    SqlLeadStore,
    SqlPerformanceAggregate,
    SqlRotationCursorRepository,
    SqlRuleRepository,
    SqlUnitOfWork,
    SqlUserDirectory,
)
from lead_router.application.use_cases.assign_lead import AssignmentCoordinator
from lead_router.application.use_cases.distribution import DistributionService
from lead_router.application.use_cases.manage_rules import ManageRulesUseCase
from lead_router.application.use_cases.rotation_sweep import RotationScheduler
from lead_router.config import settings

# Re-export session dependency
get_db_session = get_session

# Singleton sink (stateless; opens its own sessions / HTTP clients)
_event_sink = CompositeEventSink(
    LoggingEventSink(),
    SqlAuditSink(async_session_factory),
    WebhookEventSink(),
)


def build_distribution(session: AsyncSession) -> DistributionService:
    return DistributionService(
        directory=SqlUserDirectory(session),
        cursors=SqlRotationCursorRepository(session),
        states=SqlAssignmentStateRepository(session),
        performance=SqlPerformanceAggregate(async_session_factory),
        performance_timeout_seconds=settings.performance_timeout_seconds,
        performance_window_days=settings.performance_window_days,
    )


def build_scheduler(session: AsyncSession) -> RotationScheduler:
    return RotationScheduler(
        rule_repo=SqlRuleRepository(session),
        state_repo=SqlAssignmentStateRepository(session),
        lead_store=SqlLeadStore(session),
        directory=SqlUserDirectory(session),
        distribution=build_distribution(session),
        events=_event_sink,
        uow=SqlUnitOfWork(session),
        max_rotations=settings.rotation_max_rotations,
        claim_ttl_seconds=settings.rotation_claim_ttl_seconds,
        batch_size=settings.rotation_sweep_batch_size,
    )


def build_coordinator(session: AsyncSession) -> AssignmentCoordinator:
    return AssignmentCoordinator(
        rule_repo=SqlRuleRepository(session),
        state_repo=SqlAssignmentStateRepository(session),
        lead_store=SqlLeadStore(session),
        directory=SqlUserDirectory(session),
        distribution=build_distribution(session),
        scheduler=build_scheduler(session),
        events=_event_sink,
        uow=SqlUnitOfWork(session),
    )


def get_coordinator(session: AsyncSession = Depends(get_session)) -> AssignmentCoordinator:
    return build_coordinator(session)


def get_scheduler(session: AsyncSession = Depends(get_session)) -> RotationScheduler:
    return build_scheduler(session)


def get_manage_rules_uc(session: AsyncSession = Depends(get_session)) -> ManageRulesUseCase:
    return ManageRulesUseCase(
        rule_repo=SqlRuleRepository(session),
        uow=SqlUnitOfWork(session),
        directory=SqlUserDirectory(session),
    )


def get_state_repo(session: AsyncSession = Depends(get_session)) -> SqlAssignmentStateRepository:
    return SqlAssignmentStateRepository(session)
