"""Batch audit endpoints — read-only, admin roles."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from ruc_ownership.application.use_cases.audit import DEFAULT_BATCH_LIMIT, AuditRecorder
from ruc_ownership.domain.entities.user import Requester
from ruc_ownership.infrastructure.api.auth import require_capability
from ruc_ownership.infrastructure.api.dependencies import get_audit_recorder
from ruc_ownership.infrastructure.api.serializers import serialize_batch, serialize_batch_detail

router = APIRouter(prefix="/batches", tags=["batches"])


@router.get("")
async def list_batches(
    skip: int = 0,
    limit: int = DEFAULT_BATCH_LIMIT,
    requester: Requester = Depends(require_capability("sees_everything")),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    """Most recent bulk assignments first."""
    batches = await audit.list_batches(skip, limit)
    return {"total": len(batches), "batches": [serialize_batch(b) for b in batches]}


@router.get("/{batch_id}")
async def get_batch(
    batch_id: uuid.UUID,
    requester: Requester = Depends(require_capability("sees_everything")),
    audit: AuditRecorder = Depends(get_audit_recorder),
):
    return serialize_batch_detail(await audit.batch_detail(batch_id))
