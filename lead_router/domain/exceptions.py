"""Domain exceptions."""

from __future__ import annotations


class LeadRouterError(Exception):
    """Base class for all domain errors."""


class RuleValidationError(LeadRouterError):
    """A rule definition violates one or more authoring invariants."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid assignment rule")


class RuleNotFoundError(LeadRouterError):
    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Assignment rule not found: {rule_id}")


class LeadNotFoundError(LeadRouterError):
    def __init__(self, lead_id: str):
        self.lead_id = lead_id
        super().__init__(f"Lead not found: {lead_id}")


class UnknownUserError(LeadRouterError):
    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Unknown or inactive user: {user_id}")


class NoCurrentAssignmentError(LeadRouterError):
    def __init__(self, lead_id: str):
        self.lead_id = lead_id
        super().__init__(f"Lead {lead_id} has no current assignment")
