"""Initial schema — directory projection, users/teams, catalog, ledger and audit.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Entities (read-only projection of the entity directory)
    op.create_table(
        "entities",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("tax_id", sa.String(11), unique=True, nullable=False),
        sa.Column("name", sa.String(300), nullable=False, server_default=""),
        sa.Column("district", sa.String(200), nullable=False, server_default=""),
    )
    op.create_index("idx_entities_name", "entities", ["name"])

    # Teams
    op.create_table(
        "teams",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("supervisor_id", sa.Uuid, nullable=True),
    )
    op.create_index("idx_teams_supervisor", "teams", ["supervisor_id"])

    # Users
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(254), nullable=False, server_default=""),
        sa.Column("role", sa.String(30), nullable=False),
        sa.Column(
            "team_id", sa.Uuid, sa.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column(
            "reports_to_id",
            sa.Uuid,
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.true()),
    )
    op.create_index("idx_users_team", "users", ["team_id"])
    op.create_index("idx_users_reports_to", "users", ["reports_to_id"])
    op.create_index("idx_users_role", "users", ["role"])

    # Classification catalog
    op.create_table(
        "classifications",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(100), unique=True, nullable=False),
    )
    op.create_table(
        "subclassifications",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "classification_id",
            sa.Uuid,
            sa.ForeignKey("classifications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
    )
    op.create_index(
        "idx_subclassifications_parent", "subclassifications", ["classification_id"]
    )

    # Assignment ledger
    op.create_table(
        "assignments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("entity_id", sa.Uuid, nullable=False),
        sa.Column("owner_id", sa.Uuid, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assigned_by", sa.Uuid, nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "supersedes_id", sa.Integer, sa.ForeignKey("assignments.id"), nullable=True
        ),
        sa.Column("note", sa.Text, nullable=False, server_default=""),
        sa.Column(
            "classification_id",
            sa.Uuid,
            sa.ForeignKey("classifications.id"),
            nullable=True,
        ),
        sa.Column(
            "subclassification_id",
            sa.Uuid,
            sa.ForeignKey("subclassifications.id"),
            nullable=True,
        ),
        sa.Column("classification_note", sa.Text, nullable=True),
        sa.Column("classified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("classified_by", sa.Uuid, nullable=True),
    )
    op.create_index(
        "idx_assignments_entity_recency", "assignments", ["entity_id", "assigned_at", "id"]
    )
    op.create_index("idx_assignments_owner", "assignments", ["owner_id"])
    op.create_index("idx_assignments_classified_at", "assignments", ["classified_at"])
    op.create_index(
        "uq_assignments_supersedes",
        "assignments",
        ["entity_id", "supersedes_id"],
        unique=True,
    )
    op.create_index(
        "uq_assignments_first_record",
        "assignments",
        ["entity_id"],
        unique=True,
        postgresql_where=sa.text("supersedes_id IS NULL"),
    )

    # Batch audit
    op.create_table(
        "assignment_batches",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("destination_user_id", sa.Uuid, nullable=False),
        sa.Column("assigned_by", sa.Uuid, nullable=False),
        sa.Column("note", sa.Text, nullable=False, server_default=""),
        sa.Column("requested", sa.Integer, nullable=False, server_default="0"),
        sa.Column("matched", sa.Integer, nullable=False, server_default="0"),
        sa.Column("modified", sa.Integer, nullable=False, server_default="0"),
        sa.Column("overwritten", sa.Integer, nullable=False, server_default="0"),
        sa.Column("missing", sa.JSON, nullable=False),
        sa.Column("conflicted", sa.JSON, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_batches_created_at", "assignment_batches", ["created_at"])

    op.create_table(
        "assignment_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "batch_id",
            sa.Uuid,
            sa.ForeignKey("assignment_batches.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("entity_ref", sa.String(64), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("prev_owner", sa.Uuid, nullable=True),
        sa.Column("new_owner", sa.Uuid, nullable=True),
        sa.Column("assigned_by", sa.Uuid, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_logs_batch", "assignment_logs", ["batch_id"])
    op.create_index("idx_logs_entity_ref", "assignment_logs", ["entity_ref"])


def downgrade() -> None:
    op.drop_table("assignment_logs")
    op.drop_table("assignment_batches")
    op.drop_table("assignments")
    op.drop_table("subclassifications")
    op.drop_table("classifications")
    op.drop_table("users")
    op.drop_table("teams")
    op.drop_table("entities")
