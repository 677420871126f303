"""SQLAlchemy ORM models — maps to PostgreSQL tables."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ruc_ownership.adapters.persistence.database import Base


class UtcDateTime(TypeDecorator):
    """Timezone-aware UTC datetimes on every backend (SQLite drops tzinfo)."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityModel(Base):
    """Local projection of the Entity Directory (read-only for this service)."""

    __tablename__ = "entities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tax_id: Mapped[str] = mapped_column(String(11), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False, default="")
    district: Mapped[str] = mapped_column(String(200), nullable=False, default="")

    __table_args__ = (Index("idx_entities_name", "name"),)


class TeamModel(Base):
    __tablename__ = "teams"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    supervisor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    members: Mapped[list["UserModel"]] = relationship(back_populates="team")

    __table_args__ = (Index("idx_teams_supervisor", "supervisor_id"),)


class UserModel(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False, default="")
    role: Mapped[str] = mapped_column(String(30), nullable=False)
    team_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True
    )
    reports_to_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    team: Mapped["TeamModel | None"] = relationship(back_populates="members")

    __table_args__ = (
        Index("idx_users_team", "team_id"),
        Index("idx_users_reports_to", "reports_to_id"),
        Index("idx_users_role", "role"),
    )


class ClassificationModel(Base):
    __tablename__ = "classifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)

    subclassifications: Mapped[list["SubclassificationModel"]] = relationship(
        back_populates="classification"
    )


class SubclassificationModel(Base):
    __tablename__ = "subclassifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    classification_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("classifications.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    classification: Mapped["ClassificationModel"] = relationship(
        back_populates="subclassifications"
    )

    __table_args__ = (Index("idx_subclassifications_parent", "classification_id"),)


class AssignmentModel(Base):
    """Append-only ownership ledger.

    ``supersedes_id`` chains each record to the one that was current when it
    was written; the two unique indexes make that link a compare-and-swap.
    """

    __tablename__ = "assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )
    assigned_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    assigned_at: Mapped[datetime] = mapped_column(UtcDateTime, nullable=False, default=_utcnow)
    supersedes_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("assignments.id"), nullable=True
    )
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")

    classification_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("classifications.id"), nullable=True
    )
    subclassification_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("subclassifications.id"), nullable=True
    )
    classification_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    classified_at: Mapped[datetime | None] = mapped_column(UtcDateTime, nullable=True)
    classified_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        Index("idx_assignments_entity_recency", "entity_id", "assigned_at", "id"),
        Index("idx_assignments_owner", "owner_id"),
        Index("idx_assignments_classified_at", "classified_at"),
        Index("uq_assignments_supersedes", "entity_id", "supersedes_id", unique=True),
        Index(
            "uq_assignments_first_record",
            "entity_id",
            unique=True,
            postgresql_where=text("supersedes_id IS NULL"),
            sqlite_where=text("supersedes_id IS NULL"),
        ),
    )


class AssignmentBatchModel(Base):
    __tablename__ = "assignment_batches"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    destination_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    assigned_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    requested: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    matched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    modified: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    overwritten: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    missing: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    conflicted: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime, nullable=False, default=_utcnow, server_default=func.now()
    )

    logs: Mapped[list["AssignmentLogModel"]] = relationship(back_populates="batch")

    __table_args__ = (Index("idx_batches_created_at", "created_at"),)


class AssignmentLogModel(Base):
    __tablename__ = "assignment_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    batch_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("assignment_batches.id", ondelete="CASCADE"), nullable=False
    )
    entity_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    prev_owner: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    new_owner: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    assigned_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        UtcDateTime, nullable=False, default=_utcnow, server_default=func.now()
    )

    batch: Mapped["AssignmentBatchModel"] = relationship(back_populates="logs")

    __table_args__ = (
        Index("idx_logs_batch", "batch_id"),
        Index("idx_logs_entity_ref", "entity_ref"),
    )
