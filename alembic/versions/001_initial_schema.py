"""Initial schema: users, elections, contests, candidates, voter rolls, receipts, selections, audit events.

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        _created_at(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "elections",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("opens_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closes_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("opens_at < closes_at", name="ck_elections_window"),
        sa.CheckConstraint("status IN ('draft', 'published', 'closed')", name="ck_elections_status"),
    )
    op.create_index("idx_elections_organization_id", "elections", ["organization_id"])
    op.create_index("idx_elections_status", "elections", ["status"])

    op.create_table(
        "contests",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "election_id",
            UUID(as_uuid=True),
            sa.ForeignKey("elections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("max_selections", sa.Integer, nullable=False),
        sa.Column("metadata", JSONType, nullable=False),
        sa.Column("is_default", sa.Boolean, nullable=False),
        _created_at(),
        sa.CheckConstraint("max_selections >= 1", name="ck_contests_max_selections"),
    )
    op.create_index("idx_contests_election_id", "contests", ["election_id"])
    # At most one default contest per election
    op.create_index(
        "uq_contests_default_per_election",
        "contests",
        ["election_id"],
        unique=True,
        postgresql_where=sa.text("is_default"),
        sqlite_where=sa.text("is_default = 1"),
    )

    op.create_table(
        "candidates",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "election_id",
            UUID(as_uuid=True),
            sa.ForeignKey("elections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "contest_id",
            UUID(as_uuid=True),
            sa.ForeignKey("contests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("manifesto", sa.Text, nullable=True),
        _created_at(),
    )
    op.create_index("idx_candidates_contest_id", "candidates", ["contest_id"])

    op.create_table(
        "voter_roll_entries",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "election_id",
            UUID(as_uuid=True),
            sa.ForeignKey("elections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "contest_id",
            UUID(as_uuid=True),
            sa.ForeignKey("contests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        _created_at(),
        sa.UniqueConstraint("contest_id", "user_id", name="uq_voter_roll_entries_contest_user"),
    )
    op.create_index("idx_voter_roll_entries_user_id", "voter_roll_entries", ["user_id"])

    op.create_table(
        "vote_receipts",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("election_id", UUID(as_uuid=True), sa.ForeignKey("elections.id"), nullable=False),
        sa.Column("contest_id", UUID(as_uuid=True), sa.ForeignKey("contests.id"), nullable=False),
        sa.Column("voter_id", UUID(as_uuid=True), nullable=False),
        sa.Column("idempotency_key", sa.String(255), nullable=False),
        _created_at(),
        sa.UniqueConstraint("contest_id", "voter_id", name="uq_vote_receipts_contest_voter"),
        sa.UniqueConstraint("contest_id", "voter_id", "idempotency_key", name="uq_vote_receipts_contest_voter_key"),
    )
    op.create_index("idx_vote_receipts_election_id", "vote_receipts", ["election_id"])

    op.create_table(
        "vote_selections",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("receipt_id", UUID(as_uuid=True), sa.ForeignKey("vote_receipts.id"), nullable=False),
        sa.Column("election_id", UUID(as_uuid=True), nullable=False),
        sa.Column("contest_id", UUID(as_uuid=True), sa.ForeignKey("contests.id"), nullable=False),
        sa.Column("candidate_id", UUID(as_uuid=True), sa.ForeignKey("candidates.id"), nullable=False),
        sa.UniqueConstraint("receipt_id", "candidate_id", name="uq_vote_selections_receipt_candidate"),
    )
    op.create_index(
        "idx_vote_selections_contest_candidate",
        "vote_selections",
        ["contest_id", "candidate_id"],
    )

    op.create_table(
        "audit_events",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("actor_id", UUID(as_uuid=True), nullable=True),
        sa.Column("election_id", UUID(as_uuid=True), nullable=False),
        sa.Column("contest_id", UUID(as_uuid=True), nullable=True),
        sa.Column("receipt_id", UUID(as_uuid=True), nullable=True),
        sa.Column("metadata", JSONType, nullable=True),
        _created_at(),
    )
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_actor_id", "audit_events", ["actor_id"])
    op.create_index("ix_audit_events_election_id", "audit_events", ["election_id"])
    op.create_index("ix_audit_events_receipt_id", "audit_events", ["receipt_id"])


def downgrade() -> None:
    op.drop_table("audit_events")
    op.drop_table("vote_selections")
    op.drop_table("vote_receipts")
    op.drop_table("voter_roll_entries")
    op.drop_table("candidates")
    op.drop_table("contests")
    op.drop_table("elections")
    op.drop_table("users")
