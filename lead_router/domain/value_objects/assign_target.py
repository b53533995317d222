"""AssignTarget — the tagged variant behind a rule's ``assign_to`` payload.

Each distribution type has exactly one target shape:

    specific_user     -> SpecificUser(user_id)
    campaign_users    -> UserPool(user_ids)
    round_robin_role  -> RolePool(role)
    top_performer     -> TopPerformerPool(user_ids | role)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from lead_router.domain.value_objects.enums import DistributionType


@dataclass(frozen=True)
class SpecificUser:
    user_id: str


@dataclass(frozen=True)
class UserPool:
    user_ids: tuple[str, ...]


@dataclass(frozen=True)
class RolePool:
    role: str


@dataclass(frozen=True)
class TopPerformerPool:
    user_ids: tuple[str, ...] = ()
    role: str | None = None


AssignTarget = Union[SpecificUser, UserPool, RolePool, TopPerformerPool]


def _clean_ids(raw: object) -> tuple[str, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()
    seen: list[str] = []
    for item in raw:
        uid = str(item).strip() if item is not None else ""
        if uid and uid not in seen:
            seen.append(uid)
    return tuple(seen)


def target_from_payload(distribution_type: DistributionType, payload: dict | None) -> AssignTarget:
    """Build a target from the loosely-typed ``{type, value, users}`` payload.

    Shape checks (non-empty ids etc.) are left to rule validation so the
    authoring layer can report every problem at once.
    """
    payload = payload or {}
    value = payload.get("value")
    value = str(value).strip() if value is not None else ""
    users = _clean_ids(payload.get("users"))

    if distribution_type == DistributionType.SPECIFIC_USER:
        return SpecificUser(user_id=value)
    if distribution_type == DistributionType.CAMPAIGN_USERS:
        return UserPool(user_ids=users)
    if distribution_type == DistributionType.ROUND_ROBIN_ROLE:
        return RolePool(role=value)
    return TopPerformerPool(user_ids=users, role=value or None)


def target_to_payload(target: AssignTarget) -> dict:
    """Inverse of :func:`target_from_payload`, used for persistence and API output."""
    if isinstance(target, SpecificUser):
        return {"type": "user", "value": target.user_id}
    if isinstance(target, UserPool):
        return {"type": "users", "users": list(target.user_ids)}
    if isinstance(target, RolePool):
        return {"type": "role", "value": target.role}
    payload: dict = {"type": "top_performer", "users": list(target.user_ids)}
    if target.role:
        payload["value"] = target.role
    return payload


def target_matches(distribution_type: DistributionType, target: AssignTarget) -> bool:
    expected = {
        DistributionType.SPECIFIC_USER: SpecificUser,
        DistributionType.CAMPAIGN_USERS: UserPool,
        DistributionType.ROUND_ROBIN_ROLE: RolePool,
        DistributionType.TOP_PERFORMER: TopPerformerPool,
    }[distribution_type]
    return isinstance(target, expected)
