"""RoundRobinPolicy — deterministic cursor-based pick from an ordered pool."""

from __future__ import annotations

from collections.abc import Collection

from lead_router.domain.entities.rotation_cursor import RotationCursor


def start_position(pool: list[str], cursor: RotationCursor) -> int:
    """Index the cycle continues after.

    Follows the last assigned user when still present so that adding or
    removing pool members does not restart the cycle.
    """
    if cursor.last_assigned_user_id is not None and cursor.last_assigned_user_id in pool:
        return pool.index(cursor.last_assigned_user_id)
    return cursor.last_assigned_index


def pick_next(
    pool: list[str],
    cursor: RotationCursor,
    exclude: Collection[str] = (),
    at_quota: Collection[str] = (),
) -> int | None:
    """Pick the next pool index after the cursor position.

    1. Walk the pool cyclically starting at ``last + 1``, at most ``len(pool)`` steps.
    2. Skip excluded users entirely.
    3. Prefer the first user not at quota; if all remaining users are at
       quota, fall back to the first non-excluded user (plain round robin).

    Returns:
        the chosen index, or None when every pool member is excluded.

    Raises:
        ValueError: if pool is empty.
    """
    if not pool:
        raise ValueError("Cannot pick from an empty candidate list")

    size = len(pool)
    last = start_position(pool, cursor)
    order = [(last + step) % size for step in range(1, size + 1)]
    eligible = [i for i in order if pool[i] not in exclude]
    if not eligible:
        return None

    for index in eligible:
        if pool[index] not in at_quota:
            return index
    return eligible[0]


def advance(cursor: RotationCursor, pool: list[str], index: int) -> RotationCursor:
    """Return the cursor positioned on ``pool[index]`` with a bumped version."""
    return RotationCursor(
        key=cursor.key,
        last_assigned_index=index,
        last_assigned_user_id=pool[index],
        version=cursor.version + 1,
    )
