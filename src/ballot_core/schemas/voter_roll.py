"""Pydantic v2 schemas for voter-roll listing and bulk import."""

import uuid
from typing import Literal

from pydantic import BaseModel, Field

from ballot_core.schemas.common import PaginationMeta

RollIssueReason = Literal["user_not_found", "duplicate_in_payload", "already_in_roll"]


class RollImportIssue(BaseModel):
    """A roster row that was not imported, keyed by its 1-based input line."""

    row: int
    identifier: str
    reason: RollIssueReason


class RollImportResult(BaseModel):
    """Per-category counts and row-indexed issues for a roll import."""

    dry_run: bool
    total_rows: int = 0
    valid_rows: int = 0
    inserted_rows: int = 0
    duplicate_rows: int = 0
    already_in_roll_rows: int = 0
    not_found_rows: int = 0
    issues: list[RollImportIssue] = Field(default_factory=list)


class VoterRollMember(BaseModel):
    """A voter on a contest's roll."""

    user_id: uuid.UUID
    email: str | None = None
    full_name: str | None = None


class PaginatedVoterRollResponse(BaseModel):
    """Paginated list of voters on a roll."""

    items: list[VoterRollMember]
    pagination: PaginationMeta
