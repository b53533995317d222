"""Domain enums — pure Python, no external dependencies."""

from enum import Enum


class EntityType(str, Enum):
    LEAD = "lead"
    CONTACT = "contact"
    OPPORTUNITY = "opportunity"


class Operator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    GT = "gt"
    LT = "lt"


class DistributionType(str, Enum):
    SPECIFIC_USER = "specific_user"
    CAMPAIGN_USERS = "campaign_users"
    ROUND_ROBIN_ROLE = "round_robin_role"
    TOP_PERFORMER = "top_performer"


class RotationType(str, Enum):
    RANDOM = "random"
    SELECTIVE = "selective"
    MANAGER = "manager"


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    ROTATION_PENDING = "rotation_pending"
    ROTATION_EXHAUSTED = "rotation_exhausted"


class AssignmentSource(str, Enum):
    RULE = "rule"
    ROTATION = "rotation"
    MANUAL = "manual"
    BULK = "bulk"


class ValueKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    MISSING = "missing"


class DecisionReason(str, Enum):
    RULE_MATCHED = "rule_matched"
    NO_RULE_MATCHED = "no_rule_matched"
    EMPTY_POOL = "empty_pool"
    DEGRADED_FALLBACK = "degraded_fallback"
    ENGINE_ERROR = "engine_error"
    ALREADY_ASSIGNED = "already_assigned"
    MANUAL_OVERRIDE = "manual_override"
    BULK_ASSIGN = "bulk_assign"
    SLA_EXPIRED = "sla_expired"
