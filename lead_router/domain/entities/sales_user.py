"""SalesUser entity — a directory identity that can own leads."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class SalesUser:
    id: str
    name: str
    role: str
    branch_id: str | None = None
    reports_to_id: str | None = None
    is_active: bool = True
    daily_lead_quota: int | None = None
    created_at: datetime | None = None

    def has_quota(self) -> bool:
        return self.daily_lead_quota is not None and self.daily_lead_quota > 0
