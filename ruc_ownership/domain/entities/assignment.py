"""AssignmentRecord — one ownership period of an entity in the ledger."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime


@dataclass
class AssignmentRecord:
    id: int | None
    entity_id: uuid.UUID
    owner_id: uuid.UUID
    assigned_by: uuid.UUID
    assigned_at: datetime
    supersedes_id: int | None = None
    note: str = ""
    released_at: datetime | None = None
    classification_id: uuid.UUID | None = None
    subclassification_id: uuid.UUID | None = None
    classification_note: str | None = None
    classified_at: datetime | None = None
    classified_by: uuid.UUID | None = None

    @property
    def recency_key(self) -> tuple[datetime, int]:
        return (self.assigned_at, self.id or 0)

    def is_owned_by(self, user_id: uuid.UUID) -> bool:
        return self.owner_id == user_id

    def is_classified(self) -> bool:
        return self.classified_at is not None

    def apply_classification(
        self,
        classification_id: uuid.UUID,
        subclassification_id: uuid.UUID | None,
        note: str | None,
        classified_at: datetime,
        classified_by: uuid.UUID,
    ) -> None:
        self.classification_id = classification_id
        self.subclassification_id = subclassification_id
        self.classification_note = note
        self.classified_at = classified_at
        self.classified_by = classified_by

    def copy_classification_from(self, other: AssignmentRecord) -> None:
        self.classification_id = other.classification_id
        self.subclassification_id = other.subclassification_id
        self.classification_note = other.classification_note
        self.classified_at = other.classified_at
        self.classified_by = other.classified_by


class NotAssigned:
    """Sentinel for an entity that has never been assigned.

    A valid terminal state, not an error. Falsy so callers can write
    ``if not record``.
    """

    _instance: NotAssigned | None = None

    def __new__(cls) -> NotAssigned:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_ASSIGNED"


NOT_ASSIGNED = NotAssigned()
