"""Classification catalog — tipification and its subtypes."""

from __future__ import annotations

import uuid
from dataclasses import dataclass


@dataclass(frozen=True)
class Classification:
    id: uuid.UUID
    name: str


@dataclass(frozen=True)
class Subclassification:
    id: uuid.UUID
    classification_id: uuid.UUID
    name: str

    def belongs_to(self, classification_id: uuid.UUID) -> bool:
        return self.classification_id == classification_id
