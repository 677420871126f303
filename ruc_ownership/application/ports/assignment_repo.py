"""Port interface for the assignment ledger."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

from ruc_ownership.domain.entities.assignment import AssignmentRecord
from ruc_ownership.domain.policies.visibility import Scope


@dataclass(frozen=True)
class PortfolioStats:
    total: int = 0
    classified: int = 0
    last_assigned_at: datetime | None = None
    assigned_today: int = 0


class AssignmentRepository(ABC):
    @asynccontextmanager
    async def item_transaction(self) -> AsyncIterator[None]:
        """Unit of work for one batch item.

        Whatever the item read or wrote is undone if the block raises; earlier
        items are unaffected and the enclosing transaction stays usable.
        """
        yield

    @abstractmethod
    async def latest_for_entity(self, entity_id: uuid.UUID) -> AssignmentRecord | None:
        """Record with max (assigned_at, id) for the entity, or None."""
        ...

    @abstractmethod
    async def latest_for_entities(
        self, entity_ids: list[uuid.UUID]
    ) -> dict[uuid.UUID, AssignmentRecord]:
        ...

    @abstractmethod
    async def history(self, entity_id: uuid.UUID) -> list[AssignmentRecord]:
        """Every record of the entity, in any order."""
        ...

    @abstractmethod
    async def append(self, record: AssignmentRecord) -> AssignmentRecord:
        """Append *record* only if ``record.supersedes_id`` is still current.

        Compare-and-swap on the predecessor: raises ConcurrentModification when
        another record already supersedes the same predecessor (or, for
        ``supersedes_id is None``, when the entity already has a first record).
        """
        ...

    @abstractmethod
    async def update_classification(self, record: AssignmentRecord) -> AssignmentRecord:
        """Persist classification fields in place.

        Raises ConcurrentModification if the record has been superseded.
        """
        ...

    @abstractmethod
    async def list_current(
        self,
        scope: Scope,
        *,
        entity_ids: set[uuid.UUID] | None = None,
        unclassified_only: bool = False,
        offset: int = 0,
        limit: int = 24,
    ) -> tuple[list[AssignmentRecord], int]:
        """Latest record per entity whose owner is in *scope*, newest first."""
        ...

    @abstractmethod
    async def list_classified(
        self,
        scope: Scope,
        *,
        entity_ids: set[uuid.UUID] | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[AssignmentRecord], int]:
        """Classified records (any ownership period) in scope, newest classification first."""
        ...

    @abstractmethod
    async def portfolio_stats(self, owner_id: uuid.UUID, day_start: datetime) -> PortfolioStats:
        ...
