"""Rotation endpoints — manual sweep trigger and the exhausted review queue."""

from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends

from lead_router.adapters.persistence.repositories import SqlAssignmentStateRepository
from lead_router.application.use_cases.rotation_sweep import RotationScheduler
from lead_router.infrastructure.api.dependencies import get_scheduler, get_state_repo
from lead_router.infrastructure.api.routes_leads import serialize_state

router = APIRouter(prefix="/rotation", tags=["rotation"])


@router.post("/sweep")
async def run_sweep(scheduler: RotationScheduler = Depends(get_scheduler)):
    """Run one sweep pass now (the background loop does this periodically)."""
    report = await scheduler.sweep()
    return asdict(report)


@router.get("/exhausted")
async def list_exhausted(
    limit: int = 100,
    state_repo: SqlAssignmentStateRepository = Depends(get_state_repo),
):
    """Leads whose rotation ran out and now wait for a manual override."""
    states = await state_repo.list_exhausted(limit)
    return {"total": len(states), "leads": [serialize_state(s) for s in states]}
