"""Port interface for round-robin cursor persistence."""

from abc import ABC, abstractmethod
from collections.abc import Callable

from lead_router.domain.entities.rotation_cursor import RotationCursor


class RotationCursorRepository(ABC):
    @abstractmethod
    async def get(self, key: str) -> RotationCursor | None:
        ...

    @abstractmethod
    async def advance(
        self,
        key: str,
        pool: list[str],
        choose: Callable[[RotationCursor], int | None],
    ) -> int | None:
        """Atomically read the cursor, apply ``choose`` and store the result.

        Must hold a row-level lock (SELECT ... FOR UPDATE) from the read
        until the surrounding transaction ends, so the advance commits or
        rolls back together with the decision it served. A None choice
        leaves the cursor untouched.
        """
        ...
