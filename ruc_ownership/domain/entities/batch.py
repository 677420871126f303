"""Batch bookkeeping — one summary per bulk call plus per-entity log entries."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from ruc_ownership.domain.value_objects.enums import AuditAction


@dataclass(frozen=True)
class BatchSummary:
    id: uuid.UUID
    destination_user_id: uuid.UUID
    assigned_by: uuid.UUID
    requested: int
    matched: int
    modified: int
    overwritten: int
    missing: tuple[str, ...] = ()
    conflicted: tuple[str, ...] = ()
    note: str = ""
    created_at: datetime | None = None


@dataclass(frozen=True)
class AuditLogEntry:
    batch_id: uuid.UUID
    entity_ref: str
    action: AuditAction
    assigned_by: uuid.UUID
    created_at: datetime
    prev_owner: uuid.UUID | None = None
    new_owner: uuid.UUID | None = None
    id: int | None = None


@dataclass
class BatchDetail:
    summary: BatchSummary
    entries_by_action: dict[AuditAction, list[AuditLogEntry]] = field(default_factory=dict)

    @property
    def total_entries(self) -> int:
        return sum(len(v) for v in self.entries_by_action.values())
