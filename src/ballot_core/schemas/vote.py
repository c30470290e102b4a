"""Pydantic v2 schemas for ballot submission, receipts and tallies."""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class BallotSelection(BaseModel):
    """One chosen candidate."""

    candidate_id: uuid.UUID


class CastVoteRequest(BaseModel):
    """A ballot as submitted by a voter.

    ``idempotency_key`` is generated by the caller and must be reused verbatim
    when the same logical ballot is retried.
    """

    idempotency_key: str = Field(max_length=255)
    selections: list[BallotSelection]

    @property
    def candidate_ids(self) -> list[uuid.UUID]:
        """Selected candidate ids in submission order."""
        return [s.candidate_id for s in self.selections]


class VoteReceiptResponse(BaseModel):
    """Proof of submission returned to the voter."""

    receipt_id: uuid.UUID
    election_id: uuid.UUID
    contest_id: uuid.UUID
    submitted_at: datetime


class TallyEntry(BaseModel):
    """Vote total for one candidate."""

    candidate_id: uuid.UUID
    name: str
    total: int


class TallyResult(BaseModel):
    """Ordered results for a contest or a whole election."""

    election_id: uuid.UUID
    election_title: str
    contest_id: uuid.UUID | None = None
    contest_title: str | None = None
    results: list[TallyEntry] = Field(default_factory=list)
