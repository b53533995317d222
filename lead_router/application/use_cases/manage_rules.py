"""ManageRulesUseCase — authoring-time CRUD for assignment rules.

Malformed rules are rejected here, synchronously, so the engine only ever
sees rules that satisfy every invariant.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from lead_router.application.ports.rule_repo import RuleRepository
from lead_router.application.ports.unit_of_work import UnitOfWork
from lead_router.application.ports.user_directory import UserDirectory
from lead_router.domain.entities.rule import AssignmentRule
from lead_router.domain.exceptions import RuleNotFoundError, RuleValidationError
from lead_router.domain.policies.rule_matching import KNOWN_FIELDS
from lead_router.domain.value_objects.enums import EntityType

logger = logging.getLogger(__name__)


class ManageRulesUseCase:
    def __init__(
        self, rule_repo: RuleRepository, uow: UnitOfWork, directory: UserDirectory | None = None
    ):
        self._rules = rule_repo
        self._uow = uow
        self._directory = directory

    async def _validate(self, rule: AssignmentRule) -> None:
        rule.validate(KNOWN_FIELDS)
        if self._directory is None or not rule.rotation_pool:
            return
        known = {u.id for u in await self._directory.get_many(list(rule.rotation_pool))}
        missing = [uid for uid in rule.rotation_pool if uid not in known]
        if missing:
            raise RuleValidationError(
                [f"rotation pool user '{uid}' does not exist" for uid in missing]
            )

    async def list_rules(
        self, entity: EntityType | None = None, branch_id: str | None = None
    ) -> list[AssignmentRule]:
        return await self._rules.list_rules(entity=entity, branch_id=branch_id)

    async def get(self, rule_id: str) -> AssignmentRule:
        rule = await self._rules.get_by_id(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        return rule

    async def create(self, rule: AssignmentRule) -> AssignmentRule:
        await self._validate(rule)
        rule.id = rule.id or uuid.uuid4().hex
        rule.created_at = rule.created_at or datetime.now(timezone.utc)
        saved = await self._rules.save(rule)
        await self._uow.commit()
        logger.info("Created assignment rule %s '%s' (priority %d)", saved.id, saved.name, saved.priority)
        return saved

    async def update(self, rule: AssignmentRule) -> AssignmentRule:
        existing = await self.get(rule.id)
        await self._validate(rule)
        rule.created_at = existing.created_at
        saved = await self._rules.update(rule)
        await self._uow.commit()
        logger.info("Updated assignment rule %s", saved.id)
        return saved

    async def delete(self, rule_id: str) -> None:
        if not await self._rules.delete(rule_id):
            raise RuleNotFoundError(rule_id)
        await self._uow.commit()
        logger.info("Deleted assignment rule %s", rule_id)

    async def reorder(self, rule_ids: list[str]) -> list[AssignmentRule]:
        """Assign priorities 1..n following the given order."""
        if len(set(rule_ids)) != len(rule_ids):
            raise RuleValidationError(["reorder list contains duplicate ids"])
        for rule_id in rule_ids:
            if await self._rules.get_by_id(rule_id) is None:
                raise RuleNotFoundError(rule_id)

        await self._rules.set_priorities({rule_id: i + 1 for i, rule_id in enumerate(rule_ids)})
        await self._uow.commit()
        logger.info("Reordered %d assignment rules", len(rule_ids))
        return [await self._rules.get_by_id(rule_id) for rule_id in rule_ids]
