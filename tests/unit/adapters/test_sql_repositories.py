"""Tests for the SQLAlchemy repositories against an in-memory SQLite database."""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator
from datetime import date, timedelta

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ruc_ownership.adapters.persistence.database import Base
from ruc_ownership.adapters.persistence.models import (
    ClassificationModel,
    EntityModel,
    SubclassificationModel,
    TeamModel,
    UserModel,
)
from ruc_ownership.adapters.persistence.repositories import (
    SqlAssignmentRepository,
    SqlAuditRepository,
    SqlClassificationCatalog,
    SqlEntityDirectory,
    SqlUserDirectory,
)
from ruc_ownership.application.use_cases.audit import AuditRecorder
from ruc_ownership.application.use_cases.bulk_assign import BulkAssignmentProcessor
from ruc_ownership.application.use_cases.classify import ClassificationGate, ClassifiedFilter
from ruc_ownership.application.use_cases.resolve_ownership import OwnershipResolver
from ruc_ownership.application.use_cases.visibility_scope import VisibilityScopeResolver
from ruc_ownership.domain.entities.batch import AuditLogEntry, BatchSummary
from ruc_ownership.domain.entities.user import Requester
from ruc_ownership.domain.errors import ConcurrentModification
from ruc_ownership.domain.policies.visibility import Scope
from ruc_ownership.domain.value_objects.enums import AuditAction, Role
from tests.fakes import T0, FakeClock, make_record


@pytest_asyncio.fixture
async def session() -> AsyncIterator[AsyncSession]:
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves.
    @event.listens_for(engine.sync_engine, "connect")
    def _no_autobegin(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as s:
        yield s
    await engine.dispose()


@pytest_asyncio.fixture
async def seeded(session):
    """Two commercials in one supervised team, a stray commercial and three entities."""
    supervisor = UserModel(id=uuid.uuid4(), name="Susana", role=Role.TEAM_SUPERVISOR.value)
    team = TeamModel(id=uuid.uuid4(), name="Lima Norte", supervisor_id=supervisor.id)
    ana = UserModel(id=uuid.uuid4(), name="Ana", role="comercial", team_id=team.id)
    bruno = UserModel(id=uuid.uuid4(), name="Bruno", role="comercial", team_id=team.id)
    carla = UserModel(
        id=uuid.uuid4(), name="Carla", role="comercial", reports_to_id=supervisor.id, active=False
    )
    admin = UserModel(id=uuid.uuid4(), name="Sofía", role="sistemas")
    entities = [
        EntityModel(id=uuid.uuid4(), tax_id="20100000001", name="Alfa Logística SAC"),
        EntityModel(id=uuid.uuid4(), tax_id="20100000002", name="Beta Textil EIRL"),
        EntityModel(id=uuid.uuid4(), tax_id="20100000003", name="Gamma Foods SA"),
    ]
    interested = ClassificationModel(id=uuid.uuid4(), name="Interesado")
    demo = SubclassificationModel(id=uuid.uuid4(), classification_id=interested.id, name="Demo")
    session.add_all([supervisor, team, ana, bruno, carla, admin, *entities, interested, demo])
    await session.flush()
    return {
        "supervisor": supervisor, "team": team, "ana": ana, "bruno": bruno,
        "carla": carla, "admin": admin, "entities": entities,
        "interested": interested, "demo": demo,
    }


# ─── Assignment ledger ───────────────────────────────────────────────


@pytest.mark.asyncio
async def test_append_is_compare_and_swap(session, seeded):
    repo = SqlAssignmentRepository(session)
    entity = seeded["entities"][0]
    ana, bruno = seeded["ana"], seeded["bruno"]

    first = await repo.append(make_record(entity.id, ana.id, T0))
    assert first.id is not None

    with pytest.raises(ConcurrentModification):
        await repo.append(make_record(entity.id, bruno.id, T0))

    second = await repo.append(
        make_record(entity.id, bruno.id, T0 + timedelta(seconds=1), supersedes_id=first.id)
    )
    with pytest.raises(ConcurrentModification):
        await repo.append(
            make_record(entity.id, ana.id, T0 + timedelta(seconds=1), supersedes_id=first.id)
        )

    # The rejected rows were rolled back to their savepoints; the session is still usable.
    current = await repo.latest_for_entity(entity.id)
    assert current.id == second.id
    assert current.owner_id == bruno.id
    assert current.assigned_at == T0 + timedelta(seconds=1)
    assert [r.id for r in await repo.history(entity.id)] == [first.id, second.id]


@pytest.mark.asyncio
async def test_current_record_breaks_timestamp_ties_by_id(session, seeded):
    repo = SqlAssignmentRepository(session)
    entity = seeded["entities"][0]
    first = await repo.append(make_record(entity.id, seeded["ana"].id, T0))
    second = await repo.append(
        make_record(entity.id, seeded["bruno"].id, T0, supersedes_id=first.id)
    )

    assert (await repo.latest_for_entity(entity.id)).id == second.id
    latest = await repo.latest_for_entities([entity.id, seeded["entities"][1].id])
    assert list(latest) == [entity.id]
    assert latest[entity.id].owner_id == seeded["bruno"].id


@pytest.mark.asyncio
async def test_list_current_scope_and_filters(session, seeded):
    repo = SqlAssignmentRepository(session)
    ana, bruno = seeded["ana"], seeded["bruno"]
    e1, e2, e3 = seeded["entities"]
    r1 = await repo.append(make_record(e1.id, ana.id, T0))
    await repo.append(make_record(e2.id, ana.id, T0 + timedelta(minutes=1)))
    await repo.append(make_record(e3.id, bruno.id, T0 + timedelta(minutes=2)))
    await repo.append(make_record(e1.id, bruno.id, T0 + timedelta(minutes=3), supersedes_id=r1.id))

    records, total = await repo.list_current(Scope.owners([ana.id]))
    assert total == 1
    assert [r.entity_id for r in records] == [e2.id]

    records, total = await repo.list_current(Scope.everything(), limit=2)
    assert total == 3
    assert [r.entity_id for r in records] == [e1.id, e3.id]

    records, total = await repo.list_current(Scope.owners([bruno.id]), entity_ids={e3.id})
    assert total == 1 and records[0].entity_id == e3.id

    assert await repo.list_current(Scope.nothing()) == ([], 0)


@pytest.mark.asyncio
async def test_update_classification_only_on_current_record(session, seeded):
    repo = SqlAssignmentRepository(session)
    ana, bruno = seeded["ana"], seeded["bruno"]
    entity = seeded["entities"][0]
    first = await repo.append(make_record(entity.id, ana.id, T0))

    first.apply_classification(
        seeded["interested"].id, seeded["demo"].id, "ok", T0 + timedelta(hours=1), ana.id
    )
    await repo.update_classification(first)
    stored = await repo.latest_for_entity(entity.id)
    assert stored.classified_by == ana.id
    assert stored.classified_at == T0 + timedelta(hours=1)

    _, unclassified = await repo.list_current(Scope.everything(), unclassified_only=True)
    assert unclassified == 0

    await repo.append(
        make_record(entity.id, bruno.id, T0 + timedelta(hours=2), supersedes_id=first.id)
    )
    first.apply_classification(seeded["interested"].id, None, None, T0, ana.id)
    with pytest.raises(ConcurrentModification):
        await repo.update_classification(first)


@pytest.mark.asyncio
async def test_list_classified_by_date(session, seeded):
    repo = SqlAssignmentRepository(session)
    ana = seeded["ana"]
    for i, entity in enumerate(seeded["entities"]):
        record = await repo.append(make_record(entity.id, ana.id, T0))
        record.apply_classification(
            seeded["interested"].id, seeded["demo"].id, None, T0 + timedelta(days=i), ana.id
        )
        await repo.update_classification(record)

    records, total = await repo.list_classified(
        Scope.owners([ana.id]), date_from=T0 + timedelta(days=1)
    )
    assert total == 2
    assert [r.classified_at for r in records] == [T0 + timedelta(days=2), T0 + timedelta(days=1)]


@pytest.mark.asyncio
async def test_portfolio_stats(session, seeded):
    repo = SqlAssignmentRepository(session)
    ana = seeded["ana"]
    e1, e2, _ = seeded["entities"]
    await repo.append(make_record(e1.id, ana.id, T0 - timedelta(days=1)))
    record = await repo.append(make_record(e2.id, ana.id, T0 + timedelta(hours=2)))
    record.apply_classification(seeded["interested"].id, seeded["demo"].id, None, T0, ana.id)
    await repo.update_classification(record)

    stats = await repo.portfolio_stats(ana.id, T0.replace(hour=0))

    assert stats.total == 2
    assert stats.classified == 1
    assert stats.assigned_today == 1
    assert stats.last_assigned_at == T0 + timedelta(hours=2)

    empty = await repo.portfolio_stats(seeded["bruno"].id, T0)
    assert (empty.total, empty.classified, empty.assigned_today) == (0, 0, 0)
    assert empty.last_assigned_at is None


# ─── Directories ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_entity_directory(session, seeded):
    directory = SqlEntityDirectory(session)
    e1, e2, e3 = seeded["entities"]

    resolved = await directory.resolve_tax_ids(["20100000001", "20999999999"])
    assert list(resolved) == ["20100000001"]
    assert (await directory.get(e2.id)).tax_id == "20100000002"
    assert [e.id for e in await directory.search("gamma")] == [e3.id]
    assert [e.id for e in await directory.search("0000001")] == [e1.id]
    assert await directory.search("  ") == []


@pytest.mark.asyncio
async def test_user_directory(session, seeded):
    users = SqlUserDirectory(session)
    team = seeded["team"]

    teams = await users.teams_supervised_by(seeded["supervisor"].id)
    assert [t.id for t in teams] == [team.id]
    assert set(teams[0].member_user_ids) == {seeded["ana"].id, seeded["bruno"].id}

    members = await users.members_of_teams([team.id])
    assert [u.name for u in members] == ["Ana", "Bruno"]
    assert [u.name for u in await users.reporting_to(seeded["supervisor"].id)] == ["Carla"]
    assert {u.name for u in await users.users_with_role(Role.COMMERCIAL)} == {"Ana", "Bruno", "Carla"}
    assert (await users.get_user(seeded["admin"].id)).role == Role.SYSTEMS_ADMIN
    assert await users.get_user(uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_classification_catalog(session, seeded):
    catalog = SqlClassificationCatalog(session)
    sub = await catalog.get_subclassification(seeded["demo"].id)
    assert sub.belongs_to(seeded["interested"].id)
    assert (await catalog.get_classification(seeded["interested"].id)).name == "Interesado"
    assert await catalog.get_subclassification(uuid.uuid4()) is None


# ─── Audit ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_audit_repository_round_trip(session, seeded):
    repo = SqlAuditRepository(session)
    ana, admin = seeded["ana"], seeded["admin"]
    summary = BatchSummary(
        id=uuid.uuid4(), destination_user_id=ana.id, assigned_by=admin.id,
        requested=2, matched=1, modified=1, overwritten=0,
        missing=("20999999999",), created_at=T0,
    )
    entries = [
        AuditLogEntry(summary.id, "20100000001", AuditAction.ASSIGN, admin.id, T0, new_owner=ana.id),
        AuditLogEntry(summary.id, "20999999999", AuditAction.NOT_FOUND, admin.id, T0),
    ]
    await repo.save_batch(summary, entries)

    stored = await repo.get_batch(summary.id)
    assert stored.missing == ("20999999999",)
    assert stored.created_at == T0
    assert [b.id for b in await repo.list_batches(0, 10)] == [summary.id]
    logged = await repo.entries_for_batch(summary.id)
    assert [(e.entity_ref, e.action) for e in logged] == [
        ("20100000001", AuditAction.ASSIGN),
        ("20999999999", AuditAction.NOT_FOUND),
    ]
    assert logged[0].new_owner == ana.id


# ─── End to end on SQL adapters ──────────────────────────────────────


@pytest.mark.asyncio
async def test_bulk_assign_then_classify_on_sql(session, seeded):
    clock = FakeClock()
    ledger = SqlAssignmentRepository(session)
    directory = SqlEntityDirectory(session)
    users = SqlUserDirectory(session)
    catalog = SqlClassificationCatalog(session)
    resolver = OwnershipResolver(ledger, directory, clock=clock)
    scopes = VisibilityScopeResolver(users)
    processor = BulkAssignmentProcessor(
        resolver, ledger, directory, users, catalog, AuditRecorder(SqlAuditRepository(session)),
        scopes, clock=clock,
    )
    gate = ClassificationGate(resolver, ledger, catalog, directory, clock=clock)
    ana, bruno, supervisor = seeded["ana"], seeded["bruno"], seeded["supervisor"]
    e1 = seeded["entities"][0]
    as_supervisor = Requester(id=supervisor.id, role=Role.TEAM_SUPERVISOR)

    summary = await processor.assign(["20100000001", "20100000002"], ana.id, as_supervisor)
    assert (summary.modified, summary.overwritten) == (2, 0)

    summary = await processor.assign(["20100000001"], bruno.id, as_supervisor)
    assert (summary.modified, summary.overwritten) == (1, 1)

    await gate.classify(
        e1.id, bruno.id, seeded["interested"].id, seeded["demo"].id, classified_on=date(2026, 3, 2)
    )
    page = await gate.list_classified(await scopes.scope_for(as_supervisor), ClassifiedFilter())
    assert [(i.entity.tax_id, i.record.owner_id) for i in page.items] == [("20100000001", bruno.id)]

    history = await resolver.history(e1.id)
    assert [r.owner_id for r in history] == [bruno.id, ana.id]
    assert history[1].released_at == history[0].assigned_at


class _FailsAfterInsert(SqlAssignmentRepository):
    def __init__(self, session, broken_entity_id):
        super().__init__(session)
        self._broken = broken_entity_id

    async def append(self, record):
        saved = await super().append(record)
        if record.entity_id == self._broken:
            raise RuntimeError("connection reset")
        return saved


@pytest.mark.asyncio
async def test_failed_item_rolls_back_to_its_savepoint(session, seeded):
    clock = FakeClock()
    e1, e2, e3 = seeded["entities"]
    ledger = _FailsAfterInsert(session, e2.id)
    directory = SqlEntityDirectory(session)
    users = SqlUserDirectory(session)
    audit_repo = SqlAuditRepository(session)
    processor = BulkAssignmentProcessor(
        OwnershipResolver(ledger, directory, clock=clock), ledger, directory, users,
        SqlClassificationCatalog(session), AuditRecorder(audit_repo),
        VisibilityScopeResolver(users), clock=clock,
    )
    admin = Requester(id=seeded["admin"].id, role=Role.SYSTEMS_ADMIN)

    summary = await processor.assign(
        [e.tax_id for e in seeded["entities"]], seeded["ana"].id, admin
    )
    await session.commit()

    assert summary.conflicted == (e2.tax_id,)
    assert summary.modified == 2
    assert await ledger.latest_for_entity(e2.id) is None
    assert (await ledger.latest_for_entity(e1.id)).owner_id == seeded["ana"].id
    assert (await ledger.latest_for_entity(e3.id)).owner_id == seeded["ana"].id
    assert (await audit_repo.get_batch(summary.id)).conflicted == (e2.tax_id,)


@pytest.mark.asyncio
async def test_entity_search_returns_every_match_unless_limited(session):
    session.add_all(
        EntityModel(tax_id=f"20{i:09d}", name=f"Empresa Norte {i:03d}") for i in range(600)
    )
    await session.flush()
    directory = SqlEntityDirectory(session)

    assert len(await directory.search("norte")) == 600
    assert len(await directory.search("norte", limit=10)) == 10
