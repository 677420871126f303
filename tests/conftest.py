"""Pytest configuration and shared fixtures."""

import pytest

from ruc_ownership.application.use_cases.audit import AuditRecorder
from ruc_ownership.application.use_cases.bulk_assign import BulkAssignmentProcessor
from ruc_ownership.application.use_cases.classify import ClassificationGate
from ruc_ownership.application.use_cases.resolve_ownership import OwnershipResolver
from ruc_ownership.application.use_cases.visibility_scope import VisibilityScopeResolver
from tests.fakes import (
    FakeAssignmentRepo,
    FakeAuditRepo,
    FakeClock,
    FakeEntityDirectory,
    Org,
    make_catalog,
    make_entity,
)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def org():
    return Org()


@pytest.fixture
def users(org):
    return org.directory()


@pytest.fixture
def entities():
    return [
        make_entity("20100000001", "Alfa Logística SAC", "Miraflores"),
        make_entity("20100000002", "Beta Textil EIRL", "Ate"),
        make_entity("20100000003", "Gamma Foods SA", "Surco"),
    ]


@pytest.fixture
def directory(entities):
    return FakeEntityDirectory(entities)


@pytest.fixture
def ledger():
    return FakeAssignmentRepo()


@pytest.fixture
def audit_repo():
    return FakeAuditRepo()


@pytest.fixture
def catalog_setup():
    return make_catalog()


@pytest.fixture
def resolver(ledger, directory, clock):
    return OwnershipResolver(ledger, directory, clock=clock)


@pytest.fixture
def scopes(users):
    return VisibilityScopeResolver(users)


@pytest.fixture
def audit(audit_repo):
    return AuditRecorder(audit_repo)


@pytest.fixture
def processor(resolver, ledger, directory, users, catalog_setup, audit, scopes, clock):
    return BulkAssignmentProcessor(
        resolver=resolver,
        assignment_repo=ledger,
        entity_directory=directory,
        user_directory=users,
        catalog=catalog_setup[0],
        audit=audit,
        scopes=scopes,
        clock=clock,
    )


@pytest.fixture
def gate(resolver, ledger, directory, catalog_setup, clock):
    return ClassificationGate(
        resolver=resolver,
        assignment_repo=ledger,
        catalog=catalog_setup[0],
        entity_directory=directory,
        clock=clock,
    )
