"""AssignmentRule entity — an ordered, admin-defined routing definition."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from lead_router.domain.exceptions import RuleValidationError
from lead_router.domain.value_objects.assign_target import (
    AssignTarget,
    RolePool,
    SpecificUser,
    TopPerformerPool,
    UserPool,
    target_matches,
)
from lead_router.domain.value_objects.enums import (
    DistributionType,
    EntityType,
    Operator,
    RotationType,
)
from lead_router.domain.value_objects.field_value import parse_number


@dataclass(frozen=True)
class Criterion:
    field: str
    operator: Operator
    value: str


@dataclass
class AssignmentRule:
    id: str | None
    name: str
    distribution_type: DistributionType
    assign_to: AssignTarget
    priority: int = 1
    criteria: list[Criterion] = field(default_factory=list)
    description: str | None = None
    entity: EntityType = EntityType.LEAD
    is_active: bool = True
    branch_id: str | None = None
    enable_rotation: bool = False
    time_limit_minutes: int | None = None
    rotation_type: RotationType = RotationType.RANDOM
    rotation_pool: list[str] = field(default_factory=list)
    created_at: datetime | None = None

    def is_catch_all(self) -> bool:
        return not self.criteria

    def applies_to_branch(self, branch_id: str | None) -> bool:
        return self.branch_id is None or self.branch_id == branch_id

    def sort_key(self) -> tuple:
        """Priority ascending, then creation order, then id for a total order."""
        created = self.created_at.timestamp() if self.created_at else float("inf")
        return (self.priority, created, self.id or "")

    def validate(self, known_fields: frozenset[str] | set[str]) -> None:
        """Raise RuleValidationError listing every violated invariant."""
        errors: list[str] = []

        if not self.name or not self.name.strip():
            errors.append("name is required")
        if self.priority < 0:
            errors.append("priority must be zero or positive")

        for index, criterion in enumerate(self.criteria):
            if criterion.field not in known_fields:
                errors.append(f"criteria[{index}]: unknown field '{criterion.field}'")
            if criterion.operator in (Operator.GT, Operator.LT) and parse_number(criterion.value) is None:
                errors.append(
                    f"criteria[{index}]: operator '{criterion.operator.value}' needs a numeric value"
                )
            if not str(criterion.value or "").strip():
                errors.append(f"criteria[{index}]: value is required")

        if not target_matches(self.distribution_type, self.assign_to):
            errors.append(
                f"assign_to does not match distribution type '{self.distribution_type.value}'"
            )
        elif isinstance(self.assign_to, SpecificUser) and not self.assign_to.user_id:
            errors.append("specific_user requires exactly one user id")
        elif isinstance(self.assign_to, UserPool) and not self.assign_to.user_ids:
            errors.append("campaign_users requires a non-empty user list")
        elif isinstance(self.assign_to, RolePool) and not self.assign_to.role:
            errors.append("round_robin_role requires a role")
        elif isinstance(self.assign_to, TopPerformerPool) and not (
            self.assign_to.user_ids or self.assign_to.role
        ):
            errors.append("top_performer requires a user list or a role")

        if self.enable_rotation:
            if not self.time_limit_minutes or self.time_limit_minutes <= 0:
                errors.append("time_limit_minutes must be positive when rotation is enabled")
            if self.rotation_type == RotationType.SELECTIVE and not self.rotation_pool:
                errors.append("selective rotation requires a non-empty rotation pool")

        if errors:
            raise RuleValidationError(errors)
