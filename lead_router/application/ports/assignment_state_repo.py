"""Port interface for AssignmentState persistence.

Every mutation that can race with a sweep worker or a manual override is
conditional on the state's ``version``; a False / None result means the
caller lost the race and must discard its work.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from lead_router.domain.entities.assignment_state import AssignmentState


class AssignmentStateRepository(ABC):
    @abstractmethod
    async def get_current(self, lead_id: str) -> AssignmentState | None:
        ...

    @abstractmethod
    async def history(self, lead_id: str) -> list[AssignmentState]:
        """All states for the lead, oldest first, superseded ones included."""
        ...

    @abstractmethod
    async def replace_current(self, state: AssignmentState, now: datetime) -> AssignmentState:
        """Unconditionally supersede the lead's current state with ``state``.

        The superseded row gets a bumped version so in-flight rotations
        holding the old version become stale.
        """
        ...

    @abstractmethod
    async def supersede_if_version(
        self, current: AssignmentState, successor: AssignmentState, now: datetime
    ) -> AssignmentState | None:
        ...

    @abstractmethod
    async def claim(self, state: AssignmentState, now: datetime) -> AssignmentState | None:
        """Mark ``state`` rotation-pending if its version is unchanged."""
        ...

    @abstractmethod
    async def mark_exhausted(self, state: AssignmentState) -> bool:
        ...

    @abstractmethod
    async def set_deadline(self, state: AssignmentState, deadline: datetime | None) -> bool:
        """Arm (or clear) the SLA deadline and return the state to ``assigned``."""
        ...

    @abstractmethod
    async def record_activity(self, lead_id: str, occurred_at: datetime) -> AssignmentState | None:
        """Store activity on the current state and cancel its SLA clock."""
        ...

    @abstractmethod
    async def find_due(
        self, now: datetime, reclaim_before: datetime, limit: int
    ) -> list[AssignmentState]:
        """Current states past their deadline, plus stale rotation-pending claims."""
        ...

    @abstractmethod
    async def list_exhausted(self, limit: int = 100) -> list[AssignmentState]:
        ...

    @abstractmethod
    async def count_assigned_since(self, user_ids: list[str], since: datetime) -> dict[str, int]:
        """Distinct leads assigned to each user since ``since``.

        Re-routing the same lead does not count twice.
        """
        ...
