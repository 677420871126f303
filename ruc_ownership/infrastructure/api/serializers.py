"""Domain objects → API response dicts."""

from __future__ import annotations

from ruc_ownership.domain.entities.assignment import AssignmentRecord
from ruc_ownership.domain.entities.batch import AuditLogEntry, BatchDetail, BatchSummary
from ruc_ownership.domain.entities.entity_ref import EntityRef
from ruc_ownership.domain.entities.user import User


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _str(value) -> str | None:
    return str(value) if value else None


def serialize_entity(e: EntityRef | None) -> dict | None:
    if e is None:
        return None
    return {"id": str(e.id), "tax_id": e.tax_id, "name": e.name, "district": e.district}


def serialize_record(r: AssignmentRecord) -> dict:
    return {
        "id": r.id,
        "entity_id": str(r.entity_id),
        "owner_id": str(r.owner_id),
        "assigned_by": str(r.assigned_by),
        "assigned_at": r.assigned_at.isoformat(),
        "released_at": _iso(r.released_at),
        "note": r.note,
        "classified": r.is_classified(),
        "classification_id": _str(r.classification_id),
        "subclassification_id": _str(r.subclassification_id),
        "classification_note": r.classification_note,
        "classified_at": _iso(r.classified_at),
        "classified_by": _str(r.classified_by),
    }


def serialize_user(u: User) -> dict:
    return {
        "id": str(u.id),
        "name": u.name,
        "email": u.email,
        "role": u.role.value,
        "team_id": _str(u.team_id),
        "active": u.active,
    }


def serialize_batch(b: BatchSummary) -> dict:
    return {
        "id": str(b.id),
        "destination_user_id": str(b.destination_user_id),
        "assigned_by": str(b.assigned_by),
        "note": b.note,
        "requested": b.requested,
        "matched": b.matched,
        "modified": b.modified,
        "overwritten": b.overwritten,
        "missing": list(b.missing),
        "conflicted": list(b.conflicted),
        "created_at": _iso(b.created_at),
    }


def serialize_log_entry(e: AuditLogEntry) -> dict:
    return {
        "id": e.id,
        "entity_ref": e.entity_ref,
        "action": e.action.value,
        "prev_owner": _str(e.prev_owner),
        "new_owner": _str(e.new_owner),
        "assigned_by": str(e.assigned_by),
        "created_at": e.created_at.isoformat(),
    }


def serialize_batch_detail(d: BatchDetail) -> dict:
    return {
        "batch": serialize_batch(d.summary),
        "total_entries": d.total_entries,
        "entries": {
            action.value: [serialize_log_entry(e) for e in entries]
            for action, entries in d.entries_by_action.items()
        },
    }


def serialize_listing(page) -> dict:
    """A Page of OwnedEntity / ClassifiedItem (both carry ``record`` and ``entity``)."""
    return {
        "total": page.total,
        "page": page.page,
        "limit": page.limit,
        "pages": page.pages,
        "items": [
            {"entity": serialize_entity(item.entity), "assignment": serialize_record(item.record)}
            for item in page.items
        ],
    }
