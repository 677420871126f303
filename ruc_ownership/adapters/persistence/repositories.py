"""SQLAlchemy repository implementations."""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import Select, case, false, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from ruc_ownership.adapters.persistence.models import (
    AssignmentBatchModel,
    AssignmentLogModel,
    AssignmentModel,
    ClassificationModel,
    EntityModel,
    SubclassificationModel,
    TeamModel,
    UserModel,
)
from ruc_ownership.application.ports.assignment_repo import AssignmentRepository, PortfolioStats
from ruc_ownership.application.ports.audit_repo import AuditRepository
from ruc_ownership.application.ports.classification_catalog import ClassificationCatalog
from ruc_ownership.application.ports.entity_directory import EntityDirectory
from ruc_ownership.application.ports.user_directory import UserDirectory
from ruc_ownership.domain.entities.assignment import AssignmentRecord
from ruc_ownership.domain.entities.batch import AuditLogEntry, BatchSummary
from ruc_ownership.domain.entities.classification import Classification, Subclassification
from ruc_ownership.domain.entities.entity_ref import EntityRef
from ruc_ownership.domain.entities.user import Team, User
from ruc_ownership.domain.errors import ConcurrentModification
from ruc_ownership.domain.policies.visibility import Scope
from ruc_ownership.domain.value_objects.enums import AuditAction, Role
from ruc_ownership.domain.value_objects.tax_id import only_digits

logger = logging.getLogger(__name__)

# ─── Mappers ─────────────────────────────────────────────────────────


def _assignment_to_domain(m: AssignmentModel) -> AssignmentRecord:
    return AssignmentRecord(
        id=m.id,
        entity_id=m.entity_id,
        owner_id=m.owner_id,
        assigned_by=m.assigned_by,
        assigned_at=m.assigned_at,
        supersedes_id=m.supersedes_id,
        note=m.note or "",
        classification_id=m.classification_id,
        subclassification_id=m.subclassification_id,
        classification_note=m.classification_note,
        classified_at=m.classified_at,
        classified_by=m.classified_by,
    )


def _entity_to_domain(m: EntityModel) -> EntityRef:
    return EntityRef(id=m.id, tax_id=m.tax_id, name=m.name or "", district=m.district or "")


def _user_to_domain(m: UserModel) -> User:
    return User(
        id=m.id,
        name=m.name,
        role=Role.parse(m.role),
        email=m.email or "",
        team_id=m.team_id,
        reports_to_id=m.reports_to_id,
        active=m.active,
    )


def _batch_to_domain(m: AssignmentBatchModel) -> BatchSummary:
    return BatchSummary(
        id=m.id,
        destination_user_id=m.destination_user_id,
        assigned_by=m.assigned_by,
        requested=m.requested,
        matched=m.matched,
        modified=m.modified,
        overwritten=m.overwritten,
        missing=tuple(m.missing or ()),
        conflicted=tuple(m.conflicted or ()),
        note=m.note or "",
        created_at=m.created_at,
    )


def _log_to_domain(m: AssignmentLogModel) -> AuditLogEntry:
    return AuditLogEntry(
        id=m.id,
        batch_id=m.batch_id,
        entity_ref=m.entity_ref,
        action=AuditAction(m.action),
        prev_owner=m.prev_owner,
        new_owner=m.new_owner,
        assigned_by=m.assigned_by,
        created_at=m.created_at,
    )


def _scope_clause(column, scope: Scope):
    """WHERE fragment restricting *column* (an owner id) to *scope*; None if unrestricted."""
    if scope.unrestricted:
        return None
    if not scope.owner_ids:
        return false()
    return column.in_(sorted(scope.owner_ids, key=str))


# ─── Repositories ────────────────────────────────────────────────────


class SqlAssignmentRepository(AssignmentRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    @asynccontextmanager
    async def item_transaction(self) -> AsyncIterator[None]:
        async with self._s.begin_nested():
            yield

    def _current_records(self):
        """Subquery of the latest record per entity: max (assigned_at, id)."""
        rank = (
            func.row_number()
            .over(
                partition_by=AssignmentModel.entity_id,
                order_by=(AssignmentModel.assigned_at.desc(), AssignmentModel.id.desc()),
            )
            .label("rank")
        )
        ranked = select(AssignmentModel.id, rank).subquery()
        return select(ranked.c.id).where(ranked.c.rank == 1)

    def _current_select(self, scope: Scope) -> Select:
        stmt = select(AssignmentModel).where(AssignmentModel.id.in_(self._current_records()))
        clause = _scope_clause(AssignmentModel.owner_id, scope)
        if clause is not None:
            stmt = stmt.where(clause)
        return stmt

    async def latest_for_entity(self, entity_id: uuid.UUID) -> AssignmentRecord | None:
        result = await self._s.execute(
            select(AssignmentModel)
            .where(AssignmentModel.entity_id == entity_id)
            .order_by(AssignmentModel.assigned_at.desc(), AssignmentModel.id.desc())
            .limit(1)
        )
        m = result.scalar_one_or_none()
        return _assignment_to_domain(m) if m else None

    async def latest_for_entities(
        self, entity_ids: list[uuid.UUID]
    ) -> dict[uuid.UUID, AssignmentRecord]:
        if not entity_ids:
            return {}
        result = await self._s.execute(
            self._current_select(Scope.everything()).where(
                AssignmentModel.entity_id.in_(set(entity_ids))
            )
        )
        return {m.entity_id: _assignment_to_domain(m) for m in result.scalars()}

    async def history(self, entity_id: uuid.UUID) -> list[AssignmentRecord]:
        result = await self._s.execute(
            select(AssignmentModel)
            .where(AssignmentModel.entity_id == entity_id)
            .order_by(AssignmentModel.assigned_at, AssignmentModel.id)
        )
        return [_assignment_to_domain(m) for m in result.scalars()]

    async def append(self, record: AssignmentRecord) -> AssignmentRecord:
        m = AssignmentModel(
            entity_id=record.entity_id,
            owner_id=record.owner_id,
            assigned_by=record.assigned_by,
            assigned_at=record.assigned_at,
            supersedes_id=record.supersedes_id,
            note=record.note or "",
            classification_id=record.classification_id,
            subclassification_id=record.subclassification_id,
            classification_note=record.classification_note,
            classified_at=record.classified_at,
            classified_by=record.classified_by,
        )
        try:
            async with self._s.begin_nested():
                self._s.add(m)
                await self._s.flush()
        except IntegrityError as exc:
            logger.debug("CAS append rejected for %s: %s", record.entity_id, exc.orig)
            raise ConcurrentModification(record.entity_id, record.supersedes_id) from exc
        record.id = m.id
        return record

    async def update_classification(self, record: AssignmentRecord) -> AssignmentRecord:
        successor = aliased(AssignmentModel)
        has_successor = (
            select(successor.id)
            .where(successor.supersedes_id == AssignmentModel.id)
            .correlate(AssignmentModel)
            .exists()
        )
        result = await self._s.execute(
            update(AssignmentModel)
            .where(AssignmentModel.id == record.id, ~has_successor)
            .values(
                classification_id=record.classification_id,
                subclassification_id=record.subclassification_id,
                classification_note=record.classification_note,
                classified_at=record.classified_at,
                classified_by=record.classified_by,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConcurrentModification(record.entity_id, record.id)
        # Refresh any copy already in the identity map.
        await self._s.get(AssignmentModel, record.id, populate_existing=True)
        return record

    async def list_current(
        self,
        scope: Scope,
        *,
        entity_ids: set[uuid.UUID] | None = None,
        unclassified_only: bool = False,
        offset: int = 0,
        limit: int = 24,
    ) -> tuple[list[AssignmentRecord], int]:
        stmt = self._current_select(scope)
        if entity_ids is not None:
            stmt = stmt.where(AssignmentModel.entity_id.in_(entity_ids))
        if unclassified_only:
            stmt = stmt.where(AssignmentModel.classified_at.is_(None))
        return await self._paged(
            stmt,
            (AssignmentModel.assigned_at.desc(), AssignmentModel.id.desc()),
            offset,
            limit,
        )

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
        stmt = select(AssignmentModel).where(AssignmentModel.classified_at.is_not(None))
        clause = _scope_clause(AssignmentModel.owner_id, scope)
        if clause is not None:
            stmt = stmt.where(clause)
        if entity_ids is not None:
            stmt = stmt.where(AssignmentModel.entity_id.in_(entity_ids))
        if date_from is not None:
            stmt = stmt.where(AssignmentModel.classified_at >= date_from)
        if date_to is not None:
            stmt = stmt.where(AssignmentModel.classified_at <= date_to)
        return await self._paged(
            stmt,
            (AssignmentModel.classified_at.desc(), AssignmentModel.id.desc()),
            offset,
            limit,
        )

    async def portfolio_stats(self, owner_id: uuid.UUID, day_start: datetime) -> PortfolioStats:
        current = (
            self._current_select(Scope.owners([owner_id]))
            .with_only_columns(
                AssignmentModel.assigned_at, AssignmentModel.classified_at
            )
            .subquery()
        )
        result = await self._s.execute(
            select(
                func.count(),
                func.count(current.c.classified_at),
                func.max(current.c.assigned_at),
                func.sum(case((current.c.assigned_at >= day_start, 1), else_=0)),
            ).select_from(current)
        )
        total, classified, last_assigned_at, assigned_today = result.one()
        return PortfolioStats(
            total=total or 0,
            classified=classified or 0,
            last_assigned_at=last_assigned_at,
            assigned_today=assigned_today or 0,
        )

    async def _paged(
        self, stmt: Select, order_by: tuple, offset: int, limit: int
    ) -> tuple[list[AssignmentRecord], int]:
        total = await self._s.scalar(select(func.count()).select_from(stmt.subquery()))
        result = await self._s.execute(stmt.order_by(*order_by).offset(offset).limit(limit))
        return [_assignment_to_domain(m) for m in result.scalars()], total or 0


class SqlEntityDirectory(EntityDirectory):
    """Entity Directory backed by the local ``entities`` table."""

    def __init__(self, session: AsyncSession):
        self._s = session

    async def resolve_tax_ids(self, tax_ids: list[str]) -> dict[str, EntityRef]:
        if not tax_ids:
            return {}
        result = await self._s.execute(
            select(EntityModel).where(EntityModel.tax_id.in_(set(tax_ids)))
        )
        return {m.tax_id: _entity_to_domain(m) for m in result.scalars()}

    async def get_many(self, entity_ids: list[uuid.UUID]) -> dict[uuid.UUID, EntityRef]:
        if not entity_ids:
            return {}
        result = await self._s.execute(
            select(EntityModel).where(EntityModel.id.in_(set(entity_ids)))
        )
        return {m.id: _entity_to_domain(m) for m in result.scalars()}

    async def search(self, term: str, limit: int | None = None) -> list[EntityRef]:
        term = (term or "").strip()
        if not term:
            return []
        conditions = [EntityModel.name.ilike(f"%{term}%")]
        digits = only_digits(term)
        if digits:
            conditions.append(EntityModel.tax_id.contains(digits))
        stmt = select(EntityModel).where(or_(*conditions)).order_by(EntityModel.name)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._s.execute(stmt)
        return [_entity_to_domain(m) for m in result.scalars()]


class SqlUserDirectory(UserDirectory):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_user(self, user_id: uuid.UUID) -> User | None:
        m = await self._s.get(UserModel, user_id)
        return _user_to_domain(m) if m else None

    async def get_users(self, user_ids: list[uuid.UUID]) -> dict[uuid.UUID, User]:
        if not user_ids:
            return {}
        result = await self._s.execute(select(UserModel).where(UserModel.id.in_(set(user_ids))))
        return {m.id: _user_to_domain(m) for m in result.scalars()}

    async def teams_supervised_by(self, supervisor_id: uuid.UUID) -> list[Team]:
        result = await self._s.execute(
            select(TeamModel).where(TeamModel.supervisor_id == supervisor_id).order_by(TeamModel.name)
        )
        teams = list(result.scalars())
        if not teams:
            return []
        members = await self._s.execute(
            select(UserModel.id, UserModel.team_id).where(
                UserModel.team_id.in_([t.id for t in teams])
            )
        )
        by_team: dict[uuid.UUID, list[uuid.UUID]] = {}
        for user_id, team_id in members:
            by_team.setdefault(team_id, []).append(user_id)
        return [
            Team(
                id=t.id,
                name=t.name,
                supervisor_id=t.supervisor_id,
                member_user_ids=by_team.get(t.id, []),
            )
            for t in teams
        ]

    async def members_of_teams(self, team_ids: list[uuid.UUID]) -> list[User]:
        if not team_ids:
            return []
        result = await self._s.execute(
            select(UserModel).where(UserModel.team_id.in_(set(team_ids))).order_by(UserModel.name)
        )
        return [_user_to_domain(m) for m in result.scalars()]

    async def reporting_to(self, user_id: uuid.UUID) -> list[User]:
        result = await self._s.execute(
            select(UserModel).where(UserModel.reports_to_id == user_id).order_by(UserModel.name)
        )
        return [_user_to_domain(m) for m in result.scalars()]

    async def users_with_role(self, role: Role) -> list[User]:
        result = await self._s.execute(
            select(UserModel).where(UserModel.role == role.value).order_by(UserModel.name)
        )
        return [_user_to_domain(m) for m in result.scalars()]


class SqlClassificationCatalog(ClassificationCatalog):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def get_classification(self, classification_id: uuid.UUID) -> Classification | None:
        m = await self._s.get(ClassificationModel, classification_id)
        return Classification(id=m.id, name=m.name) if m else None

    async def get_subclassification(
        self, subclassification_id: uuid.UUID
    ) -> Subclassification | None:
        m = await self._s.get(SubclassificationModel, subclassification_id)
        if m is None:
            return None
        return Subclassification(id=m.id, classification_id=m.classification_id, name=m.name)


class SqlAuditRepository(AuditRepository):
    def __init__(self, session: AsyncSession):
        self._s = session

    async def save_batch(self, summary: BatchSummary, entries: list[AuditLogEntry]) -> BatchSummary:
        self._s.add(
            AssignmentBatchModel(
                id=summary.id,
                destination_user_id=summary.destination_user_id,
                assigned_by=summary.assigned_by,
                note=summary.note,
                requested=summary.requested,
                matched=summary.matched,
                modified=summary.modified,
                overwritten=summary.overwritten,
                missing=list(summary.missing),
                conflicted=list(summary.conflicted),
                created_at=summary.created_at,
            )
        )
        # Flush the batch row first so the log foreign keys resolve.
        await self._s.flush()
        self._s.add_all(
            [
                AssignmentLogModel(
                    batch_id=e.batch_id,
                    entity_ref=e.entity_ref,
                    action=e.action.value,
                    prev_owner=e.prev_owner,
                    new_owner=e.new_owner,
                    assigned_by=e.assigned_by,
                    created_at=e.created_at,
                )
                for e in entries
            ]
        )
        await self._s.flush()
        return summary

    async def list_batches(self, skip: int, limit: int) -> list[BatchSummary]:
        result = await self._s.execute(
            select(AssignmentBatchModel)
            .order_by(AssignmentBatchModel.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return [_batch_to_domain(m) for m in result.scalars()]

    async def get_batch(self, batch_id: uuid.UUID) -> BatchSummary | None:
        m = await self._s.get(AssignmentBatchModel, batch_id)
        return _batch_to_domain(m) if m else None

    async def entries_for_batch(self, batch_id: uuid.UUID) -> list[AuditLogEntry]:
        result = await self._s.execute(
            select(AssignmentLogModel)
            .where(AssignmentLogModel.batch_id == batch_id)
            .order_by(AssignmentLogModel.id)
        )
        return [_log_to_domain(m) for m in result.scalars()]
