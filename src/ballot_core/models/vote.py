"""VoteReceipt and VoteSelection models.

The two unique constraints on ``vote_receipts`` are the authority on ballot
uniqueness: one receipt per (contest, voter), and one per (contest, voter,
idempotency key).  Rows in both tables are written once and never updated.
"""

import uuid

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ballot_core.models.base import Base, CreatedAtMixin, UUIDMixin

RECEIPT_CONTEST_VOTER_CONSTRAINT = "uq_vote_receipts_contest_voter"
RECEIPT_IDEMPOTENCY_CONSTRAINT = "uq_vote_receipts_contest_voter_key"


class VoteReceipt(Base, UUIDMixin, CreatedAtMixin):
    """Durable proof that a voter submitted a ballot for a contest."""

    __tablename__ = "vote_receipts"

    election_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("elections.id"),
        nullable=False,
    )
    contest_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("contests.id"),
        nullable=False,
    )
    voter_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("contest_id", "voter_id", name=RECEIPT_CONTEST_VOTER_CONSTRAINT),
        UniqueConstraint("contest_id", "voter_id", "idempotency_key", name=RECEIPT_IDEMPOTENCY_CONSTRAINT),
        Index("idx_vote_receipts_election_id", "election_id"),
    )


class VoteSelection(Base, UUIDMixin):
    """One chosen candidate on a receipt."""

    __tablename__ = "vote_selections"

    receipt_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("vote_receipts.id"),
        nullable=False,
    )
    election_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    contest_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("contests.id"),
        nullable=False,
    )
    candidate_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("candidates.id"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("receipt_id", "candidate_id", name="uq_vote_selections_receipt_candidate"),
        Index("idx_vote_selections_contest_candidate", "contest_id", "candidate_id"),
    )
