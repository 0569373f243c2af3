"""Talent profiles, evidence documents and the scoring job ledger

Revision ID: 0001_scoring_schema
Revises:
Create Date: 2026-10-18

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_scoring_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "talent_profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("first_name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("score_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("criteria_met", sa.JSON(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "talent_documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "talent_id",
            sa.Integer(),
            sa.ForeignKey("talent_profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("file_url", sa.String(length=1000), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("file_type", sa.String(length=120), nullable=False, server_default=""),
        *_timestamps(),
    )
    op.create_index("ix_talent_documents_talent_id", "talent_documents", ["talent_id"], unique=False)

    op.create_table(
        "talent_scoring_jobs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "talent_id",
            sa.Integer(),
            sa.ForeignKey("talent_profiles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("session_id", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("overall_score", sa.Integer(), nullable=True),
        sa.Column("criteria_scores", sa.JSON(), nullable=False),
        sa.Column("raw_response", sa.JSON(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_talent_scoring_jobs_talent_id", "talent_scoring_jobs", ["talent_id"], unique=False)
    op.create_index("ix_talent_scoring_jobs_session_id", "talent_scoring_jobs", ["session_id"], unique=False)
    op.create_index("ix_talent_scoring_jobs_status", "talent_scoring_jobs", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_talent_scoring_jobs_status", table_name="talent_scoring_jobs")
    op.drop_index("ix_talent_scoring_jobs_session_id", table_name="talent_scoring_jobs")
    op.drop_index("ix_talent_scoring_jobs_talent_id", table_name="talent_scoring_jobs")
    op.drop_table("talent_scoring_jobs")
    op.drop_index("ix_talent_documents_talent_id", table_name="talent_documents")
    op.drop_table("talent_documents")
    op.drop_table("talent_profiles")
