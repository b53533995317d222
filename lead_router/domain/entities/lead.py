"""Lead entity — the normalized projection the engine routes on."""

from dataclasses import dataclass
from datetime import datetime

from lead_router.domain.value_objects.enums import EntityType


@dataclass
class Lead:
    id: str
    source: str | None = None
    campaign_name: str | None = None
    country: str | None = None
    state: str | None = None
    industry: str | None = None
    lead_score: float | None = None
    branch_id: str | None = None
    entity: EntityType = EntityType.LEAD
    created_at: datetime | None = None
