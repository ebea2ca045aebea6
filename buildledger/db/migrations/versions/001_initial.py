"""Initial schema - budgets, phases, spend, contingency, reallocations, audit

Revision ID: 001
Revises: None
Create Date: 2026-10-16
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _common_columns() -> list[sa.Column]:
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade() -> None:
    # Users
    op.create_table(
        "users",
        *_common_columns(),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="viewer"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
    )

    # Projects
    op.create_table(
        "projects",
        *_common_columns(),
        sa.Column(
            "owner_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"),
            nullable=False, index=True,
        ),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="KES"),
        sa.Column("start_date", sa.Date, nullable=True),
        sa.Column("end_date", sa.Date, nullable=True),
        sa.Column("budget", postgresql.JSONB, nullable=True),
        sa.Column("budget_version", sa.Integer, nullable=False, server_default=sa.text("1")),
    )

    # Project phases
    op.create_table(
        "project_phases",
        *_common_columns(),
        sa.Column(
            "project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"),
            nullable=False, index=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("order_index", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("budget_total", sa.Numeric(14, 2), server_default=sa.text("0")),
        sa.Column("budget_breakdown", postgresql.JSONB, nullable=True),
        sa.Column("actual_spending", postgresql.JSONB, nullable=True),
        sa.Column("actual_spending_total", sa.Numeric(14, 2), server_default=sa.text("0")),
        sa.Column("committed_total", sa.Numeric(14, 2), server_default=sa.text("0")),
        sa.Column("prerequisite_phase_ids", postgresql.JSONB, nullable=True),
    )

    # Contingency draws
    op.create_table(
        "contingency_draws",
        *_common_columns(),
        sa.Column(
            "project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"),
            nullable=False, index=True,
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column(
            "drawn_on", sa.Date, nullable=False, server_default=sa.func.current_date(), index=True
        ),
        sa.Column("reason", sa.Text, nullable=True),
    )

    # Spend records
    op.create_table(
        "spend_records",
        *_common_columns(),
        sa.Column(
            "project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"),
            nullable=False, index=True,
        ),
        sa.Column(
            "phase_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("project_phases.id"),
            nullable=True, index=True,
        ),
        sa.Column("category", sa.String(30), nullable=False, index=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="approved"),
        sa.Column("spent_on", sa.Date, nullable=False, index=True),
        sa.Column("description", sa.Text, nullable=True),
    )

    # Budget reallocations
    op.create_table(
        "budget_reallocations",
        *_common_columns(),
        sa.Column(
            "project_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("projects.id"),
            nullable=False, index=True,
        ),
        sa.Column("reallocation_type", sa.String(30), nullable=False),
        sa.Column("from_category", sa.String(30), nullable=True),
        sa.Column(
            "from_phase_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("project_phases.id"),
            nullable=True, index=True,
        ),
        sa.Column("to_category", sa.String(30), nullable=True),
        sa.Column(
            "to_phase_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("project_phases.id"),
            nullable=True, index=True,
        ),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("warnings", postgresql.JSONB, nullable=True),
        sa.Column(
            "requested_by_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"),
            nullable=False,
        ),
        sa.Column(
            "approved_by_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"),
            nullable=True,
        ),
        sa.Column(
            "rejected_by_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"),
            nullable=True,
        ),
        sa.Column("rejection_reason", sa.Text, nullable=True),
        sa.Column("approval_notes", sa.Text, nullable=True),
        sa.Column(
            "requested_at", sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )

    # Audit log
    op.create_table(
        "audit_log",
        *_common_columns(),
        sa.Column("entity_type", sa.String(100), nullable=False, index=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("actor_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("diff", postgresql.JSONB, nullable=True),
    )


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("budget_reallocations")
    op.drop_table("spend_records")
    op.drop_table("contingency_draws")
    op.drop_table("project_phases")
    op.drop_table("projects")
    op.drop_table("users")
