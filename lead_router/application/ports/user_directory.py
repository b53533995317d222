"""Port interface for the user / branch directory."""

from abc import ABC, abstractmethod

from lead_router.domain.entities.sales_user import SalesUser


class UserDirectory(ABC):
    @abstractmethod
    async def get_by_id(self, user_id: str) -> SalesUser | None:
        ...

    @abstractmethod
    async def get_many(self, user_ids: list[str]) -> list[SalesUser]:
        ...

    @abstractmethod
    async def list_active_by_role(self, role: str, branch_id: str | None = None) -> list[SalesUser]:
        """Active users with ``role``, ordered by (created_at, id).

        ``branch_id`` None means every branch.
        """
        ...

    @abstractmethod
    async def get_manager(self, user_id: str) -> SalesUser | None:
        """The user's reporting manager, if any."""
        ...
