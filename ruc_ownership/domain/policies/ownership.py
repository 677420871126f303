"""LatestWinsPolicy — which ledger record is the current one."""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime

from ruc_ownership.domain.entities.assignment import AssignmentRecord


def select_current(records: Iterable[AssignmentRecord]) -> AssignmentRecord | None:
    """Return the record with the greatest ``(assigned_at, id)``, or None.

    The id tie-break makes the result deterministic when timestamps collide.
    """
    current: AssignmentRecord | None = None
    for record in records:
        if current is None or record.recency_key > current.recency_key:
            current = record
    return current


def collapse_latest(records: Iterable[AssignmentRecord]) -> dict[uuid.UUID, AssignmentRecord]:
    """Collapse a ledger to one (latest) record per entity."""
    latest: dict[uuid.UUID, AssignmentRecord] = {}
    for record in records:
        held = latest.get(record.entity_id)
        if held is None or record.recency_key > held.recency_key:
            latest[record.entity_id] = record
    return latest


def project_history(records: Iterable[AssignmentRecord]) -> list[AssignmentRecord]:
    """Order one entity's records newest first and fill in ``released_at``.

    A record is released when the next record starts. Input records are not
    mutated; copies are returned.
    """
    ordered = sorted(records, key=lambda r: r.recency_key)
    history: list[AssignmentRecord] = []
    for idx, record in enumerate(ordered):
        released = ordered[idx + 1].assigned_at if idx + 1 < len(ordered) else None
        history.append(replace(record, released_at=released))
    history.reverse()
    return history


def next_assigned_at(previous: AssignmentRecord | None, now: datetime) -> datetime:
    """Timestamp for a record that supersedes *previous*.

    Clamped so it never sorts before its predecessor; combined with the
    larger id this keeps recency order equal to chain order under clock skew.
    """
    if previous is not None and previous.assigned_at > now:
        return previous.assigned_at
    return now
