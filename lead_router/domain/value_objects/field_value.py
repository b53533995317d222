"""FieldValue value object — a lead attribute tagged with its kind."""

from __future__ import annotations

import math
from dataclasses import dataclass

from lead_router.domain.value_objects.enums import ValueKind


@dataclass(frozen=True)
class FieldValue:
    kind: ValueKind
    text: str | None = None
    number: float | None = None

    @classmethod
    def missing(cls) -> "FieldValue":
        return cls(kind=ValueKind.MISSING)

    @classmethod
    def of(cls, raw: object) -> "FieldValue":
        """Wrap a raw attribute. None, blank strings and NaN become MISSING."""
        if raw is None or isinstance(raw, bool):
            return cls.missing()
        if isinstance(raw, (int, float)):
            if isinstance(raw, float) and math.isnan(raw):
                return cls.missing()
            return cls(kind=ValueKind.NUMBER, number=float(raw))
        text = str(raw).strip()
        if not text:
            return cls.missing()
        return cls(kind=ValueKind.STRING, text=text)

    @property
    def is_missing(self) -> bool:
        return self.kind == ValueKind.MISSING


def parse_number(raw: str | None) -> float | None:
    """Parse a criterion value as a number; None when it is not numeric."""
    if raw is None:
        return None
    try:
        value = float(str(raw).strip())
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value
