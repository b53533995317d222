"""RotationCursor entity — per-rule round-robin position."""

from dataclasses import dataclass


@dataclass
class RotationCursor:
    key: str
    last_assigned_index: int = -1
    last_assigned_user_id: str | None = None
    version: int = 0


def cursor_key(rule_id: str, pool_kind: str) -> str:
    """Cursor address, e.g. ``rule-42|users`` or ``rule-42|role-sales``."""
    return f"rule-{rule_id}|{pool_kind}"
