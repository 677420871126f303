"""FastAPI dependency injection — wires adapters into use cases."""

from __future__ import annotations

import logging

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ruc_ownership.adapters.directory.http_entity_directory import HttpEntityDirectory
from ruc_ownership.adapters.persistence.database import get_session
from ruc_ownership.adapters.persistence.repositories import (
    SqlAssignmentRepository,
    SqlAuditRepository,
    SqlClassificationCatalog,
    SqlEntityDirectory,
    SqlUserDirectory,
)
from ruc_ownership.application.ports.entity_directory import EntityDirectory
from ruc_ownership.application.use_cases.audit import AuditRecorder
from ruc_ownership.application.use_cases.bulk_assign import BulkAssignmentProcessor
from ruc_ownership.application.use_cases.classify import ClassificationGate
from ruc_ownership.application.use_cases.resolve_ownership import OwnershipResolver
from ruc_ownership.application.use_cases.visibility_scope import VisibilityScopeResolver
from ruc_ownership.config import settings

logger = logging.getLogger(__name__)

# Singleton remote directory (keeps its resolution cache across requests)
if settings.entity_directory_url:
    _remote_directory: HttpEntityDirectory | None = HttpEntityDirectory()
    logger.info("Using remote entity directory at %s", settings.entity_directory_url)
else:
    _remote_directory = None


def get_entity_directory(session: AsyncSession = Depends(get_session)) -> EntityDirectory:
    if _remote_directory is not None:
        return _remote_directory
    return SqlEntityDirectory(session)


def get_ownership_resolver(
    session: AsyncSession = Depends(get_session),
    directory: EntityDirectory = Depends(get_entity_directory),
) -> OwnershipResolver:
    return OwnershipResolver(SqlAssignmentRepository(session), directory)


def get_scope_resolver(session: AsyncSession = Depends(get_session)) -> VisibilityScopeResolver:
    return VisibilityScopeResolver(
        SqlUserDirectory(session),
        supervisor_fallback_all=settings.scope_supervisor_fallback_all,
    )


def get_audit_recorder(session: AsyncSession = Depends(get_session)) -> AuditRecorder:
    return AuditRecorder(SqlAuditRepository(session), max_limit=settings.page_max_limit)


def get_classification_gate(
    session: AsyncSession = Depends(get_session),
    directory: EntityDirectory = Depends(get_entity_directory),
) -> ClassificationGate:
    ledger = SqlAssignmentRepository(session)
    return ClassificationGate(
        resolver=OwnershipResolver(ledger, directory),
        assignment_repo=ledger,
        catalog=SqlClassificationCatalog(session),
        entity_directory=directory,
    )


def get_bulk_processor(
    session: AsyncSession = Depends(get_session),
    directory: EntityDirectory = Depends(get_entity_directory),
) -> BulkAssignmentProcessor:
    ledger = SqlAssignmentRepository(session)
    users = SqlUserDirectory(session)
    return BulkAssignmentProcessor(
        resolver=OwnershipResolver(ledger, directory),
        assignment_repo=ledger,
        entity_directory=directory,
        user_directory=users,
        catalog=SqlClassificationCatalog(session),
        audit=AuditRecorder(SqlAuditRepository(session), max_limit=settings.page_max_limit),
        scopes=VisibilityScopeResolver(
            users, supervisor_fallback_all=settings.scope_supervisor_fallback_all
        ),
        cas_retries=settings.assignment_cas_retries,
        max_identifiers=settings.bulk_max_identifiers,
    )
