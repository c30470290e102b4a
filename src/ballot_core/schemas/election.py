"""Pydantic v2 schemas for elections, contests and candidates."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ballot_core.schemas.common import PaginationMeta

# --- Request schemas ---


class ElectionCreateRequest(BaseModel):
    """Fields for creating a draft election.

    The time window is validated by the lifecycle service so that an inverted
    window surfaces as a ``BadRequestError`` like every other ballot failure.
    """

    organization_id: uuid.UUID
    title: str = Field(min_length=1, max_length=300)
    description: str | None = None
    opens_at: datetime
    closes_at: datetime


class ElectionUpdateRequest(BaseModel):
    """Partial update of a draft election."""

    title: str | None = Field(default=None, min_length=1, max_length=300)
    description: str | None = None
    opens_at: datetime | None = None
    closes_at: datetime | None = None


class ContestCreateRequest(BaseModel):
    """Fields for adding a contest to a draft election."""

    title: str = Field(max_length=300)
    description: str | None = None
    max_selections: int | None = Field(default=None, description="Defaults to 1 when omitted")
    metadata: dict[str, Any] | None = None


class ContestUpdateRequest(BaseModel):
    """Replacement values for a draft contest."""

    title: str = Field(max_length=300)
    description: str | None = None
    max_selections: int
    metadata: dict[str, Any] | None = None


class CandidateCreateRequest(BaseModel):
    """Fields for adding a candidate to a draft contest."""

    name: str = Field(max_length=300)
    manifesto: str | None = None


class CandidateUpdateRequest(CandidateCreateRequest):
    """Replacement values for a draft candidate."""


# --- Response schemas ---


class ElectionSummary(BaseModel):
    """Election fields exposed to collaborators."""

    model_config = {"from_attributes": True}

    id: uuid.UUID
    organization_id: uuid.UUID
    title: str
    description: str | None
    opens_at: datetime
    closes_at: datetime
    status: str


class PaginatedElectionListResponse(BaseModel):
    """Paginated list of elections."""

    items: list[ElectionSummary]
    pagination: PaginationMeta


class ContestSummary(BaseModel):
    """Contest fields exposed to collaborators."""

    model_config = {"from_attributes": True, "populate_by_name": True}

    id: uuid.UUID
    election_id: uuid.UUID
    title: str
    description: str | None
    max_selections: int
    metadata: dict[str, Any] = Field(validation_alias="contest_metadata")
    is_default: bool


class CandidateSummary(BaseModel):
    """Candidate fields exposed to collaborators."""

    model_config = {"from_attributes": True}

    id: uuid.UUID
    contest_id: uuid.UUID
    name: str
    manifesto: str | None
