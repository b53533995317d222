"""Inbound CRM events — LeadCreated / LeadUpdated."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from lead_router.application.use_cases.assign_lead import AssignmentCoordinator
from lead_router.domain.exceptions import LeadNotFoundError
from lead_router.infrastructure.api.dependencies import get_coordinator
from lead_router.infrastructure.api.routes_leads import serialize_decision

router = APIRouter(prefix="/events", tags=["events"])


class LeadEventIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    lead_id: str = Field(alias="leadId")


@router.post("/lead-created")
async def lead_created(body: LeadEventIn, coordinator: AssignmentCoordinator = Depends(get_coordinator)):
    try:
        decision = await coordinator.handle_lead_created(body.lead_id)
    except LeadNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return serialize_decision(decision)


@router.post("/lead-updated")
async def lead_updated(body: LeadEventIn, coordinator: AssignmentCoordinator = Depends(get_coordinator)):
    """Routes the lead only if it has no current owner."""
    try:
        decision = await coordinator.handle_lead_updated(body.lead_id)
    except LeadNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return serialize_decision(decision)
