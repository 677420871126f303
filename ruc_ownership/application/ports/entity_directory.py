"""Port interface for the external Entity Directory (RUC → canonical entity)."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod

from ruc_ownership.domain.entities.entity_ref import EntityRef


class EntityDirectory(ABC):
    @abstractmethod
    async def resolve_tax_ids(self, tax_ids: list[str]) -> dict[str, EntityRef]:
        """Map normalized 11-digit tax ids to entities. Unknown ids are omitted."""
        ...

    @abstractmethod
    async def get_many(self, entity_ids: list[uuid.UUID]) -> dict[uuid.UUID, EntityRef]:
        """Look up entities by internal id. Unknown ids are omitted."""
        ...

    @abstractmethod
    async def search(self, term: str, limit: int | None = None) -> list[EntityRef]:
        """Every entity whose name or tax id matches *term*, up to *limit* if given."""
        ...

    async def resolve_tax_id(self, tax_id: str) -> EntityRef | None:
        return (await self.resolve_tax_ids([tax_id])).get(tax_id)

    async def get(self, entity_id: uuid.UUID) -> EntityRef | None:
        return (await self.get_many([entity_id])).get(entity_id)
