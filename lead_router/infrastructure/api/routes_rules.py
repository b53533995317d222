"""Assignment rule endpoints — CRUD + reorder."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from lead_router.application.use_cases.manage_rules import ManageRulesUseCase
from lead_router.domain.entities.rule import AssignmentRule, Criterion
from lead_router.domain.exceptions import RuleNotFoundError, RuleValidationError
from lead_router.domain.value_objects.assign_target import target_from_payload, target_to_payload
from lead_router.domain.value_objects.enums import (
    DistributionType,
    EntityType,
    Operator,
    RotationType,
)
from lead_router.infrastructure.api.dependencies import get_manage_rules_uc

router = APIRouter(prefix="/assignment-rules", tags=["assignment-rules"])


class CriterionIn(BaseModel):
    field: str
    operator: Operator
    value: str = ""


class AssignToIn(BaseModel):
    type: str | None = None
    value: str | None = None
    users: list[str] = Field(default_factory=list)


class RuleIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str | None = None
    entity: EntityType = EntityType.LEAD
    criteria: list[CriterionIn] = Field(default_factory=list)
    distribution_type: DistributionType = Field(alias="distributionType")
    assign_to: AssignToIn = Field(default_factory=AssignToIn, alias="assignTo")
    priority: int = 1
    is_active: bool = Field(default=True, alias="isActive")
    enable_rotation: bool = Field(default=False, alias="enableRotation")
    time_limit_minutes: int | None = Field(default=None, alias="timeLimitMinutes")
    rotation_type: RotationType = Field(default=RotationType.RANDOM, alias="rotationType")
    rotation_pool: list[str] = Field(default_factory=list, alias="rotationPool")
    branch_id: str | None = Field(default=None, alias="branchId")

    def to_domain(self, rule_id: str | None = None) -> AssignmentRule:
        return AssignmentRule(
            id=rule_id,
            name=self.name,
            description=self.description,
            entity=self.entity,
            priority=self.priority,
            criteria=[
                Criterion(field=c.field, operator=c.operator, value=c.value)
                for c in self.criteria
            ],
            distribution_type=self.distribution_type,
            assign_to=target_from_payload(self.distribution_type, self.assign_to.model_dump()),
            is_active=self.is_active,
            branch_id=self.branch_id or None,
            enable_rotation=self.enable_rotation,
            time_limit_minutes=self.time_limit_minutes,
            rotation_type=self.rotation_type,
            rotation_pool=list(self.rotation_pool),
        )


class ReorderIn(BaseModel):
    ids: list[str]


@router.get("")
async def list_rules(
    entity: EntityType | None = None,
    branch_id: str | None = None,
    uc: ManageRulesUseCase = Depends(get_manage_rules_uc),
):
    """List rules in evaluation order (priority, then creation)."""
    rules = await uc.list_rules(entity=entity, branch_id=branch_id)
    return {"total": len(rules), "rules": [_serialize_rule(r) for r in rules]}


@router.get("/{rule_id}")
async def get_rule(rule_id: str, uc: ManageRulesUseCase = Depends(get_manage_rules_uc)):
    try:
        return _serialize_rule(await uc.get(rule_id))
    except RuleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("", status_code=201)
async def create_rule(body: RuleIn, uc: ManageRulesUseCase = Depends(get_manage_rules_uc)):
    try:
        rule = await uc.create(body.to_domain())
    except RuleValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors)
    return _serialize_rule(rule)


@router.put("/{rule_id}")
async def update_rule(
    rule_id: str, body: RuleIn, uc: ManageRulesUseCase = Depends(get_manage_rules_uc)
):
    try:
        rule = await uc.update(body.to_domain(rule_id))
    except RuleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuleValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors)
    return _serialize_rule(rule)


@router.delete("/{rule_id}")
async def delete_rule(rule_id: str, uc: ManageRulesUseCase = Depends(get_manage_rules_uc)):
    try:
        await uc.delete(rule_id)
    except RuleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "ok", "id": rule_id}


@router.post("/reorder")
async def reorder_rules(body: ReorderIn, uc: ManageRulesUseCase = Depends(get_manage_rules_uc)):
    try:
        rules = await uc.reorder(body.ids)
    except RuleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuleValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors)
    return {"total": len(rules), "rules": [_serialize_rule(r) for r in rules]}


def _serialize_rule(rule: AssignmentRule) -> dict:
    return {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "entity": rule.entity.value,
        "criteria": [
            {"field": c.field, "operator": c.operator.value, "value": c.value}
            for c in rule.criteria
        ],
        "distributionType": rule.distribution_type.value,
        "assignTo": target_to_payload(rule.assign_to),
        "priority": rule.priority,
        "isActive": rule.is_active,
        "enableRotation": rule.enable_rotation,
        "timeLimitMinutes": rule.time_limit_minutes,
        "rotationType": rule.rotation_type.value,
        "rotationPool": list(rule.rotation_pool),
        "branchId": rule.branch_id,
        "createdAt": rule.created_at.isoformat() if rule.created_at else None,
    }
