"""VoterRollEntry model: per-contest eligibility list."""

import uuid

from sqlalchemy import ForeignKey, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ballot_core.models.base import Base, CreatedAtMixin, UUIDMixin


class VoterRollEntry(Base, UUIDMixin, CreatedAtMixin):
    """Presence of a (contest, user) row is the only eligibility signal for that contest."""

    __tablename__ = "voter_roll_entries"

    election_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("elections.id", ondelete="CASCADE"),
        nullable=False,
    )
    contest_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("contests.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("contest_id", "user_id", name="uq_voter_roll_entries_contest_user"),
        Index("idx_voter_roll_entries_user_id", "user_id"),
    )
