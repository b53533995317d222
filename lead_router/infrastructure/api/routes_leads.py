"""Lead endpoints — routing, manual override, activity and assignment history."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from lead_router.application.use_cases.assign_lead import AssignmentCoordinator, AssignmentDecision
from lead_router.application.use_cases.rotation_sweep import RotationScheduler
from lead_router.domain.entities.assignment_state import AssignmentState
from lead_router.domain.entities.lead import Lead
from lead_router.domain.exceptions import (
    LeadNotFoundError,
    NoCurrentAssignmentError,
    RuleNotFoundError,
    UnknownUserError,
)
from lead_router.domain.value_objects.enums import EntityType
from lead_router.infrastructure.api.dependencies import get_coordinator, get_scheduler

router = APIRouter(prefix="/leads", tags=["leads"])


class LeadIn(BaseModel):
    """Optional lead projection; when omitted the stored lead is routed."""

    model_config = ConfigDict(populate_by_name=True)

    source: str | None = None
    campaign_name: str | None = Field(default=None, alias="campaignName")
    country: str | None = None
    state: str | None = None
    industry: str | None = None
    lead_score: float | None = Field(default=None, alias="leadScore")
    branch_id: str | None = Field(default=None, alias="branchId")
    entity: EntityType = EntityType.LEAD


class OverrideIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    assigned_to: str = Field(alias="assignedTo")


class BulkAssignIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    lead_ids: list[str] = Field(alias="leadIds")
    assigned_to: str = Field(alias="assignedTo")


class ActivityIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    occurred_at: datetime | None = Field(default=None, alias="occurredAt")


@router.post("/bulk-assign")
async def bulk_assign(body: BulkAssignIn, coordinator: AssignmentCoordinator = Depends(get_coordinator)):
    """Assign many leads to one user, bypassing rule matching."""
    try:
        count = await coordinator.assign_leads(body.lead_ids, body.assigned_to)
    except UnknownUserError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"count": count}


@router.post("/{lead_id}/assign")
async def assign_lead(
    lead_id: str,
    body: LeadIn | None = None,
    coordinator: AssignmentCoordinator = Depends(get_coordinator),
):
    if body is None:
        try:
            decision = await coordinator.handle_lead_created(lead_id)
        except LeadNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
    else:
        lead = Lead(
            id=lead_id,
            source=body.source,
            campaign_name=body.campaign_name,
            country=body.country,
            state=body.state,
            industry=body.industry,
            lead_score=body.lead_score,
            branch_id=body.branch_id,
            entity=body.entity,
        )
        decision = await coordinator.assign_lead(lead)
    return serialize_decision(decision)


@router.post("/{lead_id}/override")
async def override_assignment(
    lead_id: str,
    body: OverrideIn,
    coordinator: AssignmentCoordinator = Depends(get_coordinator),
):
    try:
        state = await coordinator.manual_override(lead_id, body.assigned_to)
    except (UnknownUserError, LeadNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    return serialize_state(state)


@router.post("/{lead_id}/activity")
async def log_activity(
    lead_id: str,
    body: ActivityIn | None = None,
    coordinator: AssignmentCoordinator = Depends(get_coordinator),
):
    """Record owner activity; stops the SLA clock of the current assignment."""
    occurred_at = body.occurred_at if body else None
    try:
        state = await coordinator.record_activity(lead_id, occurred_at)
    except LeadNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"leadId": lead_id, "assignment": serialize_state(state) if state else None}


@router.get("/{lead_id}/assignment")
async def get_assignment(lead_id: str, coordinator: AssignmentCoordinator = Depends(get_coordinator)):
    state = await coordinator.current_assignment(lead_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Lead {lead_id} has no assignment")
    return serialize_state(state)


@router.get("/{lead_id}/assignment/history")
async def get_assignment_history(
    lead_id: str, coordinator: AssignmentCoordinator = Depends(get_coordinator)
):
    states = await coordinator.history(lead_id)
    return {"leadId": lead_id, "total": len(states), "history": [serialize_state(s) for s in states]}


@router.post("/{lead_id}/rotation/rearm")
async def rearm_rotation(lead_id: str, scheduler: RotationScheduler = Depends(get_scheduler)):
    try:
        state = await scheduler.rearm(lead_id)
    except (NoCurrentAssignmentError, RuleNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    return serialize_state(state)


def serialize_decision(decision: AssignmentDecision) -> dict:
    return {
        "leadId": decision.lead_id,
        "ruleId": decision.rule_id,
        "assignedTo": decision.assignee_id,
        "reason": decision.reason.value,
        "slaDeadlineAt": decision.sla_deadline_at.isoformat() if decision.sla_deadline_at else None,
        "degraded": decision.degraded,
        "error": decision.error,
    }


def serialize_state(state: AssignmentState) -> dict:
    return {
        "id": state.id,
        "leadId": state.lead_id,
        "assignedTo": state.assignee_id,
        "assignedAt": state.assigned_at.isoformat(),
        "ruleId": state.applied_rule_id,
        "slaDeadlineAt": state.sla_deadline_at.isoformat() if state.sla_deadline_at else None,
        "rotationCount": state.rotation_count,
        "status": state.status.value,
        "source": state.source.value,
        "version": state.version,
        "isCurrent": state.is_current,
        "supersededAt": state.superseded_at.isoformat() if state.superseded_at else None,
    }
