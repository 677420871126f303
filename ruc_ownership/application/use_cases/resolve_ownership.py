"""OwnershipResolver — read-side projection of the assignment ledger."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from ruc_ownership.application.ports.assignment_repo import AssignmentRepository, PortfolioStats
from ruc_ownership.application.ports.entity_directory import EntityDirectory
from ruc_ownership.domain.entities.assignment import NOT_ASSIGNED, AssignmentRecord, NotAssigned
from ruc_ownership.domain.entities.entity_ref import EntityRef
from ruc_ownership.domain.errors import EntityNotFound, ValidationError
from ruc_ownership.domain.policies.ownership import project_history
from ruc_ownership.domain.policies.visibility import Scope
from ruc_ownership.domain.value_objects.clock import Clock, start_of_day, utcnow
from ruc_ownership.domain.value_objects.paging import Page, PageRequest
from ruc_ownership.domain.value_objects.tax_id import normalize_identifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OwnedFilter:
    unclassified_only: bool = False
    search: str | None = None


@dataclass
class OwnedEntity:
    """Current record joined with its directory entry.

    ``entity`` is None when the directory no longer knows the entity; the
    ownership record is still reported.
    """

    record: AssignmentRecord
    entity: EntityRef | None = None


class OwnershipResolver:
    """Computes current owners and portfolio views from the ledger."""

    def __init__(
        self,
        assignment_repo: AssignmentRepository,
        entity_directory: EntityDirectory,
        clock: Clock | None = None,
    ):
        self._ledger = assignment_repo
        self._directory = entity_directory
        self._clock = clock or utcnow

    async def current_owner(self, entity_id: uuid.UUID) -> AssignmentRecord | NotAssigned:
        """Current record of the entity, or NOT_ASSIGNED if it was never assigned."""
        record = await self._ledger.latest_for_entity(entity_id)
        return record if record is not None else NOT_ASSIGNED

    async def history(self, entity_id: uuid.UUID) -> list[AssignmentRecord]:
        """Every ownership period, newest first, with ``released_at`` filled in."""
        return project_history(await self._ledger.history(entity_id))

    async def resolve_entity(self, identifier: str) -> EntityRef:
        """Resolve a tax id or internal reference to its directory entry.

        Raises ValidationError for malformed input and EntityNotFound when the
        directory does not know it.
        """
        item = normalize_identifier(identifier)
        if not item.is_valid:
            raise ValidationError(f"Invalid entity identifier: {identifier!r}")
        if item.entity_id is not None:
            entity = await self._directory.get(item.entity_id)
        else:
            entity = await self._directory.resolve_tax_id(item.tax_id)
        if entity is None:
            raise EntityNotFound(item.key)
        return entity

    async def list_owned_by(
        self,
        user_id: uuid.UUID,
        filter: OwnedFilter = OwnedFilter(),
        page: PageRequest = PageRequest(),
    ) -> Page[OwnedEntity]:
        """The user's portfolio: entities whose current owner is *user_id*."""
        return await self.list_visible(Scope.owners([user_id]), filter, page)

    async def list_visible(
        self,
        scope: Scope,
        filter: OwnedFilter = OwnedFilter(),
        page: PageRequest = PageRequest(),
    ) -> Page[OwnedEntity]:
        """Current records whose owner falls inside *scope*."""
        empty: Page[OwnedEntity] = Page(items=[], total=0, page=page.page, limit=page.limit)
        if scope.is_empty:
            return empty

        entity_ids: set[uuid.UUID] | None = None
        if filter.search and filter.search.strip():
            matches = await self._directory.search(filter.search.strip())
            entity_ids = {e.id for e in matches}
            if not entity_ids:
                return empty

        records, total = await self._ledger.list_current(
            scope,
            entity_ids=entity_ids,
            unclassified_only=filter.unclassified_only,
            offset=page.offset,
            limit=page.limit,
        )
        entities = await self._directory.get_many([r.entity_id for r in records])
        items = [OwnedEntity(record=r, entity=entities.get(r.entity_id)) for r in records]
        return Page(items=items, total=total, page=page.page, limit=page.limit)

    async def portfolio_stats(self, user_id: uuid.UUID) -> PortfolioStats:
        return await self._ledger.portfolio_stats(user_id, start_of_day(self._clock()))
