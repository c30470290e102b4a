"""Election, Contest and Candidate ORM models.

An election owns one or more contests (exactly one of them the default
contest, created with the election) and each contest owns its candidates.
Contests have no open/closed state of their own: they follow their election.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ballot_core.models.base import Base, CreatedAtMixin, TimestampMixin, UUIDMixin

JSONType = JSON().with_variant(JSONB(), "postgresql")


class ElectionStatus(enum.StrEnum):
    """Election lifecycle status. Transitions only move forward."""

    DRAFT = "draft"
    PUBLISHED = "published"
    CLOSED = "closed"


class Election(Base, UUIDMixin, TimestampMixin):
    """A voting event with a single time window shared by all of its contests."""

    __tablename__ = "elections"

    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    opens_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closes_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ElectionStatus.DRAFT)

    contests: Mapped[list["Contest"]] = relationship(back_populates="election", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("opens_at < closes_at", name="ck_elections_window"),
        CheckConstraint("status IN ('draft', 'published', 'closed')", name="ck_elections_status"),
        Index("idx_elections_organization_id", "organization_id"),
        Index("idx_elections_status", "status"),
    )


class Contest(Base, UUIDMixin, CreatedAtMixin):
    """A single ballot question within an election."""

    __tablename__ = "contests"

    election_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("elections.id", ondelete="CASCADE"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    max_selections: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    contest_metadata: Mapped[dict] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    election: Mapped["Election"] = relationship(back_populates="contests")
    candidates: Mapped[list["Candidate"]] = relationship(back_populates="contest", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("max_selections >= 1", name="ck_contests_max_selections"),
        Index("idx_contests_election_id", "election_id"),
        Index(
            "uq_contests_default_per_election",
            "election_id",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default = 1"),
        ),
    )


class Candidate(Base, UUIDMixin, CreatedAtMixin):
    """A choice on a contest's ballot."""

    __tablename__ = "candidates"

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
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    manifesto: Mapped[str | None] = mapped_column(Text, nullable=True)

    contest: Mapped["Contest"] = relationship(back_populates="candidates")

    __table_args__ = (Index("idx_candidates_contest_id", "contest_id"),)
