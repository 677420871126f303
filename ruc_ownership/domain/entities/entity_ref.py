"""EntityRef — canonical business record (RUC) owned by the Entity Directory."""

from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class EntityRef:
    id: uuid.UUID
    tax_id: str
    name: str = ""
    district: str = ""

    def matches(self, term: str) -> bool:
        """Case-insensitive name match, or digit substring match on the tax id."""
        if not term:
            return True
        needle = term.strip().lower()
        if needle and needle in self.name.lower():
            return True
        digits = "".join(ch for ch in term if ch.isdigit())
        return bool(digits) and digits in self.tax_id
