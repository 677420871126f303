"""Identifier normalization for RUC tax ids and internal entity references."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass

TAX_ID_LENGTH = 11

_NON_DIGITS = re.compile(r"\D")


def only_digits(raw: str | None) -> str:
    """Strip every non-digit character. ``None`` becomes an empty string."""
    if raw is None:
        return ""
    return _NON_DIGITS.sub("", str(raw))


def is_tax_id(value: str) -> bool:
    return len(value) == TAX_ID_LENGTH and value.isdigit()


def parse_entity_ref(raw: str | None) -> uuid.UUID | None:
    """Return the UUID if *raw* is an internal entity reference."""
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw).strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class NormalizedIdentifier:
    """One caller-supplied identifier after normalization.

    Exactly one of ``tax_id`` / ``entity_id`` is set for a valid identifier;
    neither is set when the raw input is malformed.
    """

    raw: str
    tax_id: str | None = None
    entity_id: uuid.UUID | None = None

    @property
    def is_valid(self) -> bool:
        return self.tax_id is not None or self.entity_id is not None

    @property
    def key(self) -> str:
        """Deduplication key and the string reported back to the caller."""
        if self.tax_id is not None:
            return self.tax_id
        if self.entity_id is not None:
            return str(self.entity_id)
        return self.raw


def normalize_identifier(raw: str | None) -> NormalizedIdentifier:
    """Normalize one identifier.

    An internal reference (UUID) is accepted as is. Otherwise all non-digits are
    stripped and the result must be exactly 11 digits; 10 or 12 digits are never
    padded or truncated.
    """
    text = "" if raw is None else str(raw).strip()
    entity_id = parse_entity_ref(text)
    if entity_id is not None:
        return NormalizedIdentifier(raw=text, entity_id=entity_id)
    digits = only_digits(text)
    if is_tax_id(digits):
        return NormalizedIdentifier(raw=text, tax_id=digits)
    return NormalizedIdentifier(raw=text)


def normalize_identifiers(raw_items: list[str]) -> list[NormalizedIdentifier]:
    """Normalize and deduplicate, keeping first-seen order. Blank items are dropped."""
    seen: set[str] = set()
    result: list[NormalizedIdentifier] = []
    for raw in raw_items:
        item = normalize_identifier(raw)
        if not item.raw:
            continue
        if item.key in seen:
            continue
        seen.add(item.key)
        result.append(item)
    return result
