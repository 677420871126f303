"""Assignment endpoints — bulk assign, preview, portfolios and ownership lookups."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from ruc_ownership.adapters.persistence.database import get_session
from ruc_ownership.application.use_cases.bulk_assign import (
    AssignOptions,
    BulkAssignmentProcessor,
)
from ruc_ownership.application.use_cases.resolve_ownership import OwnedFilter, OwnershipResolver
from ruc_ownership.application.use_cases.visibility_scope import VisibilityScopeResolver
from ruc_ownership.config import settings
from ruc_ownership.domain.entities.user import Requester
from ruc_ownership.domain.errors import OutOfScope
from ruc_ownership.domain.value_objects.paging import DEFAULT_PAGE_LIMIT, PageRequest
from ruc_ownership.infrastructure.api.auth import get_requester, require_any_capability
from ruc_ownership.infrastructure.api.dependencies import (
    get_bulk_processor,
    get_ownership_resolver,
    get_scope_resolver,
)
from ruc_ownership.infrastructure.api.serializers import (
    serialize_entity,
    serialize_listing,
    serialize_record,
)

router = APIRouter(prefix="/assignments", tags=["assignments"])

can_assign = require_any_capability("can_assign_globally", "can_supervise_team")


class BulkAssignRequest(BaseModel):
    identifiers: list[str] = Field(default_factory=list)
    destination_user_id: str
    note: str | None = None
    overwrite: bool = True
    ignore_classification: bool = True
    classification_id: uuid.UUID | None = None
    subclassification_id: uuid.UUID | None = None


class PreviewRequest(BaseModel):
    identifiers: list[str] = Field(default_factory=list)


@router.post("/bulk")
async def bulk_assign(
    body: BulkAssignRequest,
    requester: Requester = Depends(can_assign),
    processor: BulkAssignmentProcessor = Depends(get_bulk_processor),
    session: AsyncSession = Depends(get_session),
):
    """Assign a list of tax ids / entity references to one user."""
    summary = await processor.assign(
        body.identifiers,
        body.destination_user_id,
        requester,
        AssignOptions(
            overwrite=body.overwrite,
            ignore_classification=body.ignore_classification,
            classification_id=body.classification_id,
            subclassification_id=body.subclassification_id,
            note=body.note,
        ),
    )
    await session.commit()
    return {
        "batch_id": str(summary.id),
        "requested": summary.requested,
        "matched": summary.matched,
        "modified": summary.modified,
        "overwritten": summary.overwritten,
        "missing": list(summary.missing),
        "conflicted": list(summary.conflicted),
    }


@router.post("/preview")
async def preview_assignment(
    body: PreviewRequest,
    requester: Requester = Depends(get_requester),
    processor: BulkAssignmentProcessor = Depends(get_bulk_processor),
):
    """Dry run: which identifiers resolve and which already have an owner.

    Owner ids are only disclosed inside the caller's visibility scope.
    """
    preview = await processor.preview(body.identifiers, requester)
    return {
        "found": [
            {
                **serialize_entity(item.entity),
                "owned": item.owned,
                "owner_id": str(item.owner_id) if item.owner_id else None,
            }
            for item in preview.found
        ],
        "missing": preview.missing,
        "owned": preview.owned,
    }


@router.get("/mine")
async def list_mine(
    unclassified_only: bool = False,
    q: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
    requester: Requester = Depends(get_requester),
    resolver: OwnershipResolver = Depends(get_ownership_resolver),
):
    """The caller's own portfolio."""
    result = await resolver.list_owned_by(
        requester.id,
        OwnedFilter(unclassified_only=unclassified_only, search=q),
        PageRequest.of(page, limit, settings.page_max_limit),
    )
    return serialize_listing(result)


@router.get("/team")
async def list_team(
    user_ids: list[uuid.UUID] = Query(default=[]),
    unclassified_only: bool = False,
    q: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
    requester: Requester = Depends(get_requester),
    resolver: OwnershipResolver = Depends(get_ownership_resolver),
    scopes: VisibilityScopeResolver = Depends(get_scope_resolver),
):
    """Portfolios visible to the caller, optionally narrowed to some users."""
    scope = (await scopes.scope_for(requester)).narrow(user_ids)
    result = await resolver.list_visible(
        scope,
        OwnedFilter(unclassified_only=unclassified_only, search=q),
        PageRequest.of(page, limit, settings.page_max_limit),
    )
    data = serialize_listing(result)
    data["scope_issue"] = scope.issue
    return data


@router.get("/stats")
async def my_stats(
    requester: Requester = Depends(get_requester),
    resolver: OwnershipResolver = Depends(get_ownership_resolver),
):
    stats = await resolver.portfolio_stats(requester.id)
    return {
        "total": stats.total,
        "classified": stats.classified,
        "unclassified": stats.total - stats.classified,
        "last_assigned_at": (
            stats.last_assigned_at.isoformat() if stats.last_assigned_at else None
        ),
        "assigned_today": stats.assigned_today,
    }


@router.get("/{entity}/owner")
async def get_owner(
    entity: str,
    requester: Requester = Depends(get_requester),
    resolver: OwnershipResolver = Depends(get_ownership_resolver),
    scopes: VisibilityScopeResolver = Depends(get_scope_resolver),
):
    """Current owner of an entity given as tax id or internal reference."""
    ref = await resolver.resolve_entity(entity)
    current = await resolver.current_owner(ref.id)
    if current and not (await scopes.scope_for(requester)).allows_record(current):
        raise OutOfScope(f"Entity {ref.tax_id} is outside the caller's visibility")
    return {
        "entity": serialize_entity(ref),
        "assigned": bool(current),
        "assignment": serialize_record(current) if current else None,
    }


@router.get("/{entity}/history")
async def get_history(
    entity: str,
    requester: Requester = Depends(get_requester),
    resolver: OwnershipResolver = Depends(get_ownership_resolver),
    scopes: VisibilityScopeResolver = Depends(get_scope_resolver),
):
    """Every ownership period of an entity, newest first."""
    ref = await resolver.resolve_entity(entity)
    history = await resolver.history(ref.id)
    if history and not (await scopes.scope_for(requester)).allows_record(history[0]):
        raise OutOfScope(f"Entity {ref.tax_id} is outside the caller's visibility")
    return {
        "entity": serialize_entity(ref),
        "history": [serialize_record(r) for r in history],
    }

