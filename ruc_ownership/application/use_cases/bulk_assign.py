"""BulkAssignmentProcessor — batch entity → user ownership transfers."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from ruc_ownership.application.ports.assignment_repo import AssignmentRepository
from ruc_ownership.application.ports.classification_catalog import ClassificationCatalog
from ruc_ownership.application.ports.entity_directory import EntityDirectory
from ruc_ownership.application.ports.user_directory import UserDirectory
from ruc_ownership.application.use_cases.audit import AuditRecorder
from ruc_ownership.application.use_cases.classify import validate_classification
from ruc_ownership.application.use_cases.resolve_ownership import OwnershipResolver
from ruc_ownership.application.use_cases.visibility_scope import VisibilityScopeResolver
from ruc_ownership.domain.entities.assignment import AssignmentRecord
from ruc_ownership.domain.entities.batch import AuditLogEntry, BatchSummary
from ruc_ownership.domain.entities.entity_ref import EntityRef
from ruc_ownership.domain.entities.user import Requester, User
from ruc_ownership.domain.errors import (
    ConcurrentModification,
    Forbidden,
    OutOfScope,
    UserNotFound,
    ValidationError,
)
from ruc_ownership.domain.policies.capabilities import (
    can_start_bulk_assignment,
    capabilities_for,
)
from ruc_ownership.domain.policies.ownership import next_assigned_at
from ruc_ownership.domain.value_objects.clock import Clock, utcnow
from ruc_ownership.domain.value_objects.enums import AuditAction
from ruc_ownership.domain.value_objects.tax_id import (
    NormalizedIdentifier,
    normalize_identifiers,
    parse_entity_ref,
)

logger = logging.getLogger(__name__)

DEFAULT_CAS_RETRIES = 2
DEFAULT_MAX_IDENTIFIERS = 5000


@dataclass(frozen=True)
class AssignOptions:
    overwrite: bool = True
    ignore_classification: bool = True
    classification_id: uuid.UUID | None = None
    subclassification_id: uuid.UUID | None = None
    note: str | None = None

    @property
    def has_explicit_classification(self) -> bool:
        return self.classification_id is not None


@dataclass
class PreviewItem:
    """One resolved entity. ``owner_id`` is withheld when the owner is outside the caller's scope."""

    entity: EntityRef
    owned: bool = False
    owner_id: uuid.UUID | None = None


@dataclass
class AssignmentPreview:
    """Dry run of a bulk assignment: what would be found, missing or taken over."""

    found: list[PreviewItem] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    owned: list[str] = field(default_factory=list)


@dataclass
class _BatchTally:
    """Mutable accumulator for one batch; frozen into a BatchSummary at the end."""

    batch_id: uuid.UUID
    assigned_by: uuid.UUID
    created_at: datetime
    requested: int = 0
    matched: int = 0
    modified: int = 0
    overwritten: int = 0
    missing: list[str] = field(default_factory=list)
    conflicted: list[str] = field(default_factory=list)
    entries: list[AuditLogEntry] = field(default_factory=list)

    def log(
        self,
        ref: str,
        action: AuditAction,
        prev_owner: uuid.UUID | None = None,
        new_owner: uuid.UUID | None = None,
    ) -> None:
        self.entries.append(
            AuditLogEntry(
                batch_id=self.batch_id,
                entity_ref=ref,
                action=action,
                assigned_by=self.assigned_by,
                created_at=self.created_at,
                prev_owner=prev_owner,
                new_owner=new_owner,
            )
        )

    def mark_missing(self, ref: str) -> None:
        self.missing.append(ref)
        self.log(ref, AuditAction.NOT_FOUND)

    def mark_conflicted(self, ref: str, prev_owner: uuid.UUID | None = None) -> None:
        self.conflicted.append(ref)
        self.log(ref, AuditAction.SKIP_CONFLICT, prev_owner=prev_owner)

    def record(
        self,
        ref: str,
        action: AuditAction,
        prev_owner: uuid.UUID | None,
        destination_id: uuid.UUID,
    ) -> None:
        """Count the outcome of one matched entity."""
        self.matched += 1
        if action == AuditAction.SKIP_CONFLICT:
            self.mark_conflicted(ref, prev_owner=prev_owner)
            return
        if action in (AuditAction.ASSIGN, AuditAction.REASSIGN):
            self.modified += 1
        if action == AuditAction.REASSIGN:
            self.overwritten += 1
        self.log(ref, action, prev_owner=prev_owner, new_owner=destination_id)

    def to_summary(self, destination_id: uuid.UUID, note: str) -> BatchSummary:
        return BatchSummary(
            id=self.batch_id,
            destination_user_id=destination_id,
            assigned_by=self.assigned_by,
            requested=self.requested,
            matched=self.matched,
            modified=self.modified,
            overwritten=self.overwritten,
            missing=tuple(self.missing),
            conflicted=tuple(self.conflicted),
            note=note,
            created_at=self.created_at,
        )


class BulkAssignmentProcessor:
    """Validates and applies a batch of ownership transfers.

    Per identifier:
      1. Normalize (11 digits or internal reference), else missing.
      2. Resolve through the Entity Directory, else missing.
      3. Read the current record.
      4. No record  →  first assignment.
      5. Record exists  →  no-op (same owner), skip (overwrite disabled) or
         append a new record superseding it.
      6. Any error  →  conflicted; the batch carries on.

    Steps 3-5 run in entity-id order, each inside its own item transaction, so a
    failed item rolls back alone and the writes already applied stand.
    Appends are compare-and-swap on the predecessor record; a lost race is
    re-read and retried ``cas_retries`` times before being reported conflicted.
    """

    def __init__(
        self,
        resolver: OwnershipResolver,
        assignment_repo: AssignmentRepository,
        entity_directory: EntityDirectory,
        user_directory: UserDirectory,
        catalog: ClassificationCatalog,
        audit: AuditRecorder,
        scopes: VisibilityScopeResolver,
        *,
        cas_retries: int = DEFAULT_CAS_RETRIES,
        max_identifiers: int = DEFAULT_MAX_IDENTIFIERS,
        clock: Clock | None = None,
    ):
        self._resolver = resolver
        self._ledger = assignment_repo
        self._directory = entity_directory
        self._users = user_directory
        self._catalog = catalog
        self._audit = audit
        self._scopes = scopes
        self._cas_retries = max(0, cas_retries)
        self._max_identifiers = max_identifiers
        self._clock = clock or utcnow

    async def assign(
        self,
        identifiers: list[str],
        destination_user_id: uuid.UUID | str,
        requester: Requester,
        options: AssignOptions = AssignOptions(),
    ) -> BatchSummary:
        destination = await self._validate_destination(destination_user_id, requester)
        if options.has_explicit_classification or options.subclassification_id is not None:
            await validate_classification(
                self._catalog,
                options.classification_id,
                options.subclassification_id,
                require_subclassification=False,
            )

        items = self._normalize(identifiers)
        now = self._clock()
        tally = _BatchTally(
            batch_id=uuid.uuid4(),
            assigned_by=requester.id,
            created_at=now,
            requested=len(items),
        )
        note = (options.note or "").strip()

        targets = await self._resolve_targets(items, tally)
        # Fixed entity order, so concurrent batches take row locks in the same order.
        for ref, entity in sorted(targets, key=lambda target: target[1].id):
            try:
                async with self._ledger.item_transaction():
                    action, prev_owner = await self._apply(
                        entity, ref, destination, requester, options, note, tally.batch_id
                    )
            except Exception:
                logger.exception("Batch %s: failed to process %s", tally.batch_id, ref)
                tally.mark_conflicted(ref)
                continue
            tally.record(ref, action, prev_owner, destination.id)

        summary = tally.to_summary(destination.id, note)
        await self._audit.record_batch(summary, tally.entries)
        logger.info(
            "Batch %s → %s: requested=%d matched=%d modified=%d overwritten=%d "
            "missing=%d conflicted=%d",
            summary.id, destination.id, summary.requested, summary.matched,
            summary.modified, summary.overwritten, len(summary.missing),
            len(summary.conflicted),
        )
        return summary

    async def preview(self, identifiers: list[str], requester: Requester) -> AssignmentPreview:
        """Report which identifiers resolve, which are missing and which already have an owner.

        The current owner is disclosed only when it falls inside the requester's
        scope; otherwise the item is just flagged as owned.
        """
        items = self._normalize(identifiers)
        entities = await self._prefetch_entities(items)
        preview = AssignmentPreview()

        found: list[tuple[str, EntityRef]] = []
        for item in items:
            entity = entities.get(item.key) if item.is_valid else None
            if entity is None:
                preview.missing.append(item.key)
            else:
                found.append((item.key, entity))

        scope = await self._scopes.scope_for(requester)
        owners = await self._ledger.latest_for_entities([e.id for _, e in found])
        for key, entity in found:
            current = owners.get(entity.id)
            visible = current is not None and scope.allows_record(current)
            preview.found.append(
                PreviewItem(
                    entity=entity,
                    owned=current is not None,
                    owner_id=current.owner_id if visible else None,
                )
            )
            if current is not None:
                preview.owned.append(key)
        return preview

    # ─── Validation ──────────────────────────────────────────────────

    def _normalize(self, identifiers: list[str]) -> list[NormalizedIdentifier]:
        items = normalize_identifiers(list(identifiers or []))
        if len(items) > self._max_identifiers:
            raise ValidationError(
                f"Too many identifiers: {len(items)} (max {self._max_identifiers})"
            )
        if not any(item.is_valid for item in items):
            raise ValidationError("No valid identifiers after normalization")
        return items

    async def _validate_destination(
        self, destination_user_id: uuid.UUID | str, requester: Requester
    ) -> User:
        dest_id = (
            destination_user_id
            if isinstance(destination_user_id, uuid.UUID)
            else parse_entity_ref(destination_user_id)
        )
        if dest_id is None:
            raise ValidationError(f"Invalid destination user id: {destination_user_id!r}")

        if not can_start_bulk_assignment(requester.role):
            raise Forbidden(f"Role {requester.role.value} cannot assign entities")

        user = await self._users.get_user(dest_id)
        if user is None:
            raise UserNotFound(dest_id)
        if not user.active:
            raise ValidationError(f"Destination user {dest_id} is inactive")
        if not user.is_commercial():
            raise ValidationError(f"Destination user {dest_id} is not a commercial user")

        if capabilities_for(requester.role).can_assign_globally:
            return user
        scope = await self._scopes.scope_for(requester)
        if not scope.allows_user(user):
            raise OutOfScope(f"User {dest_id} is outside the requester's team")
        return user

    # ─── Per-item processing ─────────────────────────────────────────

    async def _prefetch_entities(self, items: list[NormalizedIdentifier]) -> dict[str, EntityRef]:
        """Resolve every valid identifier in two directory calls, keyed by ``item.key``.

        A directory failure here is not fatal; items are then resolved one by one.
        """
        tax_ids = [i.tax_id for i in items if i.tax_id is not None]
        entity_ids = [i.entity_id for i in items if i.entity_id is not None]
        resolved: dict[str, EntityRef] = {}
        try:
            async with self._ledger.item_transaction():
                if tax_ids:
                    resolved.update(await self._directory.resolve_tax_ids(tax_ids))
                if entity_ids:
                    by_id = await self._directory.get_many(entity_ids)
                    resolved.update({str(k): v for k, v in by_id.items()})
        except Exception:
            logger.warning("Entity prefetch failed; resolving identifiers one by one", exc_info=True)
            return {}
        return resolved

    async def _lookup(
        self, item: NormalizedIdentifier, prefetched: dict[str, EntityRef]
    ) -> EntityRef | None:
        if item.key in prefetched:
            return prefetched[item.key]
        if item.entity_id is not None:
            return await self._directory.get(item.entity_id)
        return await self._directory.resolve_tax_id(item.tax_id)

    async def _resolve_targets(
        self, items: list[NormalizedIdentifier], tally: _BatchTally
    ) -> list[tuple[str, EntityRef]]:
        """Map identifiers to distinct entities; unknown ones are marked missing in input order."""
        prefetched = await self._prefetch_entities(items)
        targets: list[tuple[str, EntityRef]] = []
        seen: set[uuid.UUID] = set()
        for item in items:
            if not item.is_valid:
                tally.mark_missing(item.key)
                continue
            try:
                async with self._ledger.item_transaction():
                    entity = await self._lookup(item, prefetched)
            except Exception:
                logger.exception("Batch %s: failed to resolve %s", tally.batch_id, item.key)
                tally.mark_conflicted(item.key)
                continue
            if entity is None:
                tally.mark_missing(item.key)
                continue
            if entity.id in seen:
                # Same entity under a second identifier (tax id and internal ref).
                continue
            seen.add(entity.id)
            targets.append((entity.tax_id or item.key, entity))
        return targets

    async def _apply(
        self,
        entity: EntityRef,
        ref: str,
        destination: User,
        requester: Requester,
        options: AssignOptions,
        note: str,
        batch_id: uuid.UUID,
    ) -> tuple[AuditAction, uuid.UUID | None]:
        """Bring one entity's ledger to the destination owner.

        Returns the audit action and the previous owner. A lost compare-and-swap
        is re-read and retried; once retries run out the item is a conflict.
        """
        for attempt in range(self._cas_retries + 1):
            current = await self._resolver.current_owner(entity.id)

            if current and current.owner_id == destination.id and not options.has_explicit_classification:
                return AuditAction.NO_CHANGE, current.owner_id
            if current and current.owner_id != destination.id and not options.overwrite:
                return AuditAction.SKIP_CONFLICT, current.owner_id

            record = self._build_record(
                entity.id, current or None, destination, requester, options, note
            )
            try:
                await self._ledger.append(record)
            except ConcurrentModification:
                logger.warning(
                    "Batch %s: ledger for %s moved during assignment (attempt %d)",
                    batch_id, ref, attempt + 1,
                )
                continue
            if current:
                return AuditAction.REASSIGN, current.owner_id
            return AuditAction.ASSIGN, None

        return AuditAction.SKIP_CONFLICT, None

    def _build_record(
        self,
        entity_id: uuid.UUID,
        current: AssignmentRecord | None,
        destination: User,
        requester: Requester,
        options: AssignOptions,
        note: str,
    ) -> AssignmentRecord:
        now = self._clock()
        record = AssignmentRecord(
            id=None,
            entity_id=entity_id,
            owner_id=destination.id,
            assigned_by=requester.id,
            assigned_at=next_assigned_at(current, now),
            supersedes_id=current.id if current else None,
            note=note,
        )
        if current is None:
            return record

        if options.has_explicit_classification:
            record.apply_classification(
                classification_id=options.classification_id,
                subclassification_id=options.subclassification_id,
                note=note or None,
                classified_at=now,
                classified_by=requester.id,
            )
        elif not (options.overwrite and options.ignore_classification):
            record.copy_classification_from(current)
        return record
