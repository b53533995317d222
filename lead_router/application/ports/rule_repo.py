"""Port interface for assignment rule persistence."""

from abc import ABC, abstractmethod

from lead_router.domain.entities.rule import AssignmentRule
from lead_router.domain.value_objects.enums import EntityType


class RuleRepository(ABC):
    @abstractmethod
    async def get_by_id(self, rule_id: str) -> AssignmentRule | None:
        ...

    @abstractmethod
    async def list_rules(
        self,
        entity: EntityType | None = None,
        branch_id: str | None = None,
        active_only: bool = False,
    ) -> list[AssignmentRule]:
        """Rules ordered by (priority, created_at).

        When ``branch_id`` is given, global rules (no branch) are included too.
        """
        ...

    @abstractmethod
    async def save(self, rule: AssignmentRule) -> AssignmentRule:
        ...

    @abstractmethod
    async def update(self, rule: AssignmentRule) -> AssignmentRule:
        ...

    @abstractmethod
    async def delete(self, rule_id: str) -> bool:
        ...

    @abstractmethod
    async def set_priorities(self, priorities: dict[str, int]) -> None:
        ...
