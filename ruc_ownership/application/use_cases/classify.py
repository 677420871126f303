"""ClassificationGate — owner-only tipification of the current assignment."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime

from ruc_ownership.application.ports.assignment_repo import AssignmentRepository
from ruc_ownership.application.ports.classification_catalog import ClassificationCatalog
from ruc_ownership.application.ports.entity_directory import EntityDirectory
from ruc_ownership.application.use_cases.resolve_ownership import OwnershipResolver
from ruc_ownership.domain.entities.assignment import AssignmentRecord
from ruc_ownership.domain.entities.entity_ref import EntityRef
from ruc_ownership.domain.entities.user import Requester
from ruc_ownership.domain.errors import (
    Forbidden,
    NoActiveAssignment,
    NotFound,
    NotOwner,
    ValidationError,
)
from ruc_ownership.domain.policies.capabilities import capabilities_for
from ruc_ownership.domain.policies.visibility import Scope
from ruc_ownership.domain.value_objects.clock import Clock, day_end, day_start, utcnow
from ruc_ownership.domain.value_objects.paging import Page, PageRequest

logger = logging.getLogger(__name__)


async def validate_classification(
    catalog: ClassificationCatalog,
    classification_id: uuid.UUID | None,
    subclassification_id: uuid.UUID | None,
    *,
    require_subclassification: bool = True,
) -> None:
    """Check that the pair exists and that the subtype belongs to the type."""
    if classification_id is None:
        if subclassification_id is not None:
            raise ValidationError("subclassification_id requires classification_id")
        raise ValidationError("classification_id is required")
    if subclassification_id is None:
        if require_subclassification:
            raise ValidationError("subclassification_id is required")
        if await catalog.get_classification(classification_id) is None:
            raise NotFound(f"Classification not found: {classification_id}")
        return

    sub = await catalog.get_subclassification(subclassification_id)
    if sub is None:
        raise NotFound(f"Subclassification not found: {subclassification_id}")
    if not sub.belongs_to(classification_id):
        raise ValidationError(
            "Subclassification does not belong to the selected classification"
        )


@dataclass(frozen=True)
class ClassifiedFilter:
    owner_ids: tuple[uuid.UUID, ...] = ()
    search: str | None = None
    date_from: date | None = None
    date_to: date | None = None


@dataclass
class ClassifiedItem:
    record: AssignmentRecord
    entity: EntityRef | None = None


class ClassificationGate:
    """Lets only the current owner attach a classification to an entity."""

    def __init__(
        self,
        resolver: OwnershipResolver,
        assignment_repo: AssignmentRepository,
        catalog: ClassificationCatalog,
        entity_directory: EntityDirectory,
        clock: Clock | None = None,
    ):
        self._resolver = resolver
        self._ledger = assignment_repo
        self._catalog = catalog
        self._directory = entity_directory
        self._clock = clock or utcnow

    async def classify(
        self,
        entity_id: uuid.UUID,
        requester_id: uuid.UUID,
        classification_id: uuid.UUID,
        subclassification_id: uuid.UUID,
        note: str | None = None,
        classified_on: date | None = None,
    ) -> AssignmentRecord:
        """Classify the current assignment in place.

        Ownership is checked before the catalog so a non-owner always gets
        NotOwner, whatever else is wrong with the request.
        """
        current = await self._resolver.current_owner(entity_id)
        if not current:
            raise NoActiveAssignment(entity_id)
        if not current.is_owned_by(requester_id):
            logger.warning(
                "Classification of %s refused: %s is not the owner (%s)",
                entity_id, requester_id, current.owner_id,
            )
            raise NotOwner(entity_id, requester_id)

        await validate_classification(self._catalog, classification_id, subclassification_id)

        classified_at = day_start(classified_on) if classified_on else self._clock()
        current.apply_classification(
            classification_id=classification_id,
            subclassification_id=subclassification_id,
            note=note.strip() if isinstance(note, str) else current.classification_note,
            classified_at=classified_at,
            classified_by=requester_id,
        )
        saved = await self._ledger.update_classification(current)
        logger.info(
            "Entity %s classified by %s (record %s)", entity_id, requester_id, saved.id
        )
        return saved

    async def classify_identifier(
        self,
        identifier: str,
        requester: Requester,
        classification_id: uuid.UUID,
        subclassification_id: uuid.UUID,
        note: str | None = None,
        classified_on: date | None = None,
    ) -> tuple[EntityRef, AssignmentRecord]:
        """Classify an entity given as a tax id or internal reference."""
        if not capabilities_for(requester.role).can_classify:
            raise Forbidden(f"Role {requester.role.value} cannot classify entities")
        entity = await self._resolver.resolve_entity(identifier)
        record = await self.classify(
            entity.id, requester.id, classification_id, subclassification_id,
            note=note, classified_on=classified_on,
        )
        return entity, record

    async def list_classified(
        self,
        scope: Scope,
        filter: ClassifiedFilter = ClassifiedFilter(),
        page: PageRequest = PageRequest(limit=20),
    ) -> Page[ClassifiedItem]:
        """Classified records in scope, newest classification first."""
        scope = scope.narrow(filter.owner_ids)
        empty: Page[ClassifiedItem] = Page(items=[], total=0, page=page.page, limit=page.limit)
        if scope.is_empty:
            return empty

        entity_ids: set[uuid.UUID] | None = None
        if filter.search and filter.search.strip():
            matches = await self._directory.search(filter.search.strip())
            entity_ids = {e.id for e in matches}
            if not entity_ids:
                return empty

        date_from: datetime | None = day_start(filter.date_from) if filter.date_from else None
        date_to: datetime | None = day_end(filter.date_to) if filter.date_to else None
        if date_from and date_to and date_from > date_to:
            raise ValidationError("date_from must not be after date_to")

        records, total = await self._ledger.list_classified(
            scope,
            entity_ids=entity_ids,
            date_from=date_from,
            date_to=date_to,
            offset=page.offset,
            limit=page.limit,
        )
        entities = await self._directory.get_many([r.entity_id for r in records])
        items = [ClassifiedItem(record=r, entity=entities.get(r.entity_id)) for r in records]
        return Page(items=items, total=total, page=page.page, limit=page.limit)
