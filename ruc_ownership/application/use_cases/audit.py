"""AuditRecorder — write-once batch summaries and per-entity log entries."""

from __future__ import annotations

import logging
import uuid

from ruc_ownership.application.ports.audit_repo import AuditRepository
from ruc_ownership.domain.entities.batch import AuditLogEntry, BatchDetail, BatchSummary
from ruc_ownership.domain.errors import BatchNotFound, InternalError
from ruc_ownership.domain.value_objects.enums import AuditAction
from ruc_ownership.domain.value_objects.paging import MAX_PAGE_LIMIT

logger = logging.getLogger(__name__)

DEFAULT_BATCH_LIMIT = 50


class AuditRecorder:
    def __init__(self, audit_repo: AuditRepository, max_limit: int = MAX_PAGE_LIMIT):
        self._repo = audit_repo
        self._max_limit = max_limit

    async def record_batch(
        self, summary: BatchSummary, entries: list[AuditLogEntry]
    ) -> BatchSummary:
        stray = [e for e in entries if e.batch_id != summary.id]
        if stray:
            raise InternalError(
                f"{len(stray)} audit entries do not belong to batch {summary.id}"
            )
        saved = await self._repo.save_batch(summary, entries)
        logger.debug("Recorded batch %s with %d entries", summary.id, len(entries))
        return saved

    async def list_batches(
        self, skip: int = 0, limit: int = DEFAULT_BATCH_LIMIT
    ) -> list[BatchSummary]:
        skip = max(0, int(skip))
        limit = min(self._max_limit, max(1, int(limit)))
        return await self._repo.list_batches(skip, limit)

    async def batch_detail(self, batch_id: uuid.UUID) -> BatchDetail:
        """Batch summary plus its entries grouped by action (newest entry first)."""
        summary = await self._repo.get_batch(batch_id)
        if summary is None:
            raise BatchNotFound(batch_id)
        entries = await self._repo.entries_for_batch(batch_id)
        entries = sorted(entries, key=lambda e: (e.created_at, e.id or 0), reverse=True)

        grouped: dict[AuditAction, list[AuditLogEntry]] = {}
        for action in AuditAction:
            bucket = [e for e in entries if e.action == action]
            if bucket:
                grouped[action] = bucket
        return BatchDetail(summary=summary, entries_by_action=grouped)
