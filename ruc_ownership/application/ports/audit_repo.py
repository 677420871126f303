"""Port interface for batch audit persistence (write-once, read-many)."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod

from ruc_ownership.domain.entities.batch import AuditLogEntry, BatchSummary


class AuditRepository(ABC):
    @abstractmethod
    async def save_batch(self, summary: BatchSummary, entries: list[AuditLogEntry]) -> BatchSummary:
        """Persist the summary and its entries together."""
        ...

    @abstractmethod
    async def list_batches(self, skip: int, limit: int) -> list[BatchSummary]:
        """Newest first."""
        ...

    @abstractmethod
    async def get_batch(self, batch_id: uuid.UUID) -> BatchSummary | None:
        ...

    @abstractmethod
    async def entries_for_batch(self, batch_id: uuid.UUID) -> list[AuditLogEntry]:
        ...
