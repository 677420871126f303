"""Classification endpoints — owner-only tipification and the classified listing."""

from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ruc_ownership.adapters.persistence.database import get_session
from ruc_ownership.application.use_cases.classify import ClassificationGate, ClassifiedFilter
from ruc_ownership.application.use_cases.visibility_scope import VisibilityScopeResolver
from ruc_ownership.config import settings
from ruc_ownership.domain.entities.user import Requester
from ruc_ownership.domain.value_objects.paging import PageRequest
from ruc_ownership.infrastructure.api.auth import get_requester, require_capability
from ruc_ownership.infrastructure.api.dependencies import (
    get_classification_gate,
    get_scope_resolver,
)
from ruc_ownership.infrastructure.api.serializers import (
    serialize_entity,
    serialize_listing,
    serialize_record,
)

router = APIRouter(prefix="/classifications", tags=["classifications"])


class ClassifyRequest(BaseModel):
    entity: str
    classification_id: uuid.UUID
    subclassification_id: uuid.UUID
    note: str | None = None
    classified_on: date | None = None


@router.post("")
async def classify_entity(
    body: ClassifyRequest,
    requester: Requester = Depends(require_capability("can_classify")),
    gate: ClassificationGate = Depends(get_classification_gate),
    session: AsyncSession = Depends(get_session),
):
    """Classify an entity the caller currently owns."""
    entity, record = await gate.classify_identifier(
        body.entity,
        requester,
        body.classification_id,
        body.subclassification_id,
        note=body.note,
        classified_on=body.classified_on,
    )
    await session.commit()
    return {"entity": serialize_entity(entity), "assignment": serialize_record(record)}


@router.get("")
async def list_classified(
    user_ids: list[uuid.UUID] = Query(default=[]),
    q: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    page: int = 1,
    limit: int = 20,
    requester: Requester = Depends(get_requester),
    gate: ClassificationGate = Depends(get_classification_gate),
    scopes: VisibilityScopeResolver = Depends(get_scope_resolver),
):
    """Classified entities visible to the caller, newest classification first."""
    scope = await scopes.scope_for(requester)
    result = await gate.list_classified(
        scope,
        ClassifiedFilter(
            owner_ids=tuple(user_ids), search=q, date_from=date_from, date_to=date_to
        ),
        PageRequest.of(page, limit, settings.page_max_limit),
    )
    data = serialize_listing(result)
    data["scope_issue"] = scope.issue
    return data
