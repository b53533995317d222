"""RuleMatchingPolicy — pick the first rule whose criteria all hold for a lead.

Field paths such as ``sourceDetails.campaignName`` are resolved through a
fixed accessor registry rather than by walking arbitrary objects, so every
criterion compares a tagged :class:`FieldValue`. A MISSING value fails every
operator.
"""

from __future__ import annotations

from typing import Callable, Iterable

from lead_router.domain.entities.lead import Lead
from lead_router.domain.entities.rule import AssignmentRule, Criterion
from lead_router.domain.value_objects.enums import EntityType, Operator, ValueKind
from lead_router.domain.value_objects.field_value import FieldValue, parse_number

FieldAccessor = Callable[[Lead], FieldValue]

FIELD_ACCESSORS: dict[str, FieldAccessor] = {
    "source": lambda lead: FieldValue.of(lead.source),
    "sourceDetails.campaignName": lambda lead: FieldValue.of(lead.campaign_name),
    "address.country": lambda lead: FieldValue.of(lead.country),
    "address.state": lambda lead: FieldValue.of(lead.state),
    "industry": lambda lead: FieldValue.of(lead.industry),
    "leadScore": lambda lead: FieldValue.of(lead.lead_score),
}

KNOWN_FIELDS: frozenset[str] = frozenset(FIELD_ACCESSORS)


def read_field(lead: Lead, field: str) -> FieldValue:
    accessor = FIELD_ACCESSORS.get(field)
    if accessor is None:
        return FieldValue.missing()
    return accessor(lead)


def _equals(value: FieldValue, expected: str) -> bool:
    if value.kind == ValueKind.NUMBER:
        number = parse_number(expected)
        return number is not None and value.number == number
    return value.text.casefold() == str(expected).strip().casefold()


def _contains(value: FieldValue, expected: str) -> bool:
    if value.kind != ValueKind.STRING:
        return False
    needle = str(expected).strip().casefold()
    return bool(needle) and needle in value.text.casefold()


def _compare(value: FieldValue, expected: str, greater: bool) -> bool:
    if value.kind != ValueKind.NUMBER:
        return False
    threshold = parse_number(expected)
    if threshold is None:
        return False
    return value.number > threshold if greater else value.number < threshold


_OPERATORS: dict[Operator, Callable[[FieldValue, str], bool]] = {
    Operator.EQUALS: _equals,
    Operator.CONTAINS: _contains,
    Operator.GT: lambda value, expected: _compare(value, expected, greater=True),
    Operator.LT: lambda value, expected: _compare(value, expected, greater=False),
}


def evaluate_criterion(lead: Lead, criterion: Criterion) -> bool:
    value = read_field(lead, criterion.field)
    if value.is_missing:
        return False
    return _OPERATORS[criterion.operator](value, criterion.value)


def rule_matches(lead: Lead, rule: AssignmentRule) -> bool:
    """AND over all criteria; an empty list matches unconditionally."""
    return all(evaluate_criterion(lead, c) for c in rule.criteria)


def order_rules(rules: Iterable[AssignmentRule]) -> list[AssignmentRule]:
    return sorted(rules, key=lambda r: r.sort_key())


def select_rule(lead: Lead, rules: Iterable[AssignmentRule]) -> AssignmentRule | None:
    """Return the first applicable, fully matching rule or None (Unassigned).

    Rules are re-ordered and re-filtered here so callers may pass an
    unsorted or unscoped list.
    """
    entity = lead.entity or EntityType.LEAD
    for rule in order_rules(rules):
        if not rule.is_active or rule.entity != entity:
            continue
        if not rule.applies_to_branch(lead.branch_id):
            continue
        if rule_matches(lead, rule):
            return rule
    return None
