"""Unit tests for the Pydantic schemas."""

import uuid
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from ballot_core.models.election import Contest
from ballot_core.schemas.common import PaginationMeta
from ballot_core.schemas.election import ContestSummary, ElectionCreateRequest
from ballot_core.schemas.vote import BallotSelection, CastVoteRequest, TallyResult
from ballot_core.schemas.voter_roll import RollImportIssue, RollImportResult


class TestCastVoteRequest:
    """Tests for CastVoteRequest."""

    def test_candidate_ids_keep_order(self) -> None:
        first, second = uuid.uuid4(), uuid.uuid4()
        request = CastVoteRequest(
            idempotency_key="k",
            selections=[BallotSelection(candidate_id=second), BallotSelection(candidate_id=first)],
        )
        assert request.candidate_ids == [second, first]

    def test_key_length_limit(self) -> None:
        with pytest.raises(ValidationError):
            CastVoteRequest(idempotency_key="k" * 256, selections=[])

    def test_parses_json_payload(self) -> None:
        candidate = uuid.uuid4()
        request = CastVoteRequest.model_validate(
            {"idempotency_key": "abc", "selections": [{"candidate_id": str(candidate)}]}
        )
        assert request.candidate_ids == [candidate]


class TestElectionCreateRequest:
    """Tests for ElectionCreateRequest."""

    def test_requires_title(self) -> None:
        with pytest.raises(ValidationError):
            ElectionCreateRequest(
                organization_id=uuid.uuid4(),
                title="",
                opens_at=datetime(2026, 1, 1, tzinfo=UTC),
                closes_at=datetime(2026, 1, 2, tzinfo=UTC),
            )


class TestContestSummary:
    """Tests for ContestSummary."""

    def test_reads_metadata_from_orm_attribute(self) -> None:
        contest = Contest(
            id=uuid.uuid4(),
            election_id=uuid.uuid4(),
            title="Council",
            description=None,
            max_selections=2,
            contest_metadata={"seats": 2},
            is_default=False,
        )
        summary = ContestSummary.model_validate(contest)
        assert summary.metadata == {"seats": 2}
        assert summary.max_selections == 2


class TestPaginationMeta:
    """Tests for PaginationMeta.build."""

    @pytest.mark.parametrize(("total", "expected"), [(0, 0), (1, 1), (20, 1), (21, 2)])
    def test_total_pages(self, total: int, expected: int) -> None:
        assert PaginationMeta.build(total=total, page=1, page_size=20).total_pages == expected


class TestResultSchemas:
    """Defaults of result schemas."""

    def test_tally_result_defaults(self) -> None:
        result = TallyResult(election_id=uuid.uuid4(), election_title="Board")
        assert result.results == []
        assert result.contest_id is None

    def test_roll_import_issue_rejects_unknown_reason(self) -> None:
        with pytest.raises(ValidationError):
            RollImportIssue(row=1, identifier="x", reason="typo")

    def test_roll_import_result_starts_empty(self) -> None:
        result = RollImportResult(dry_run=True)
        assert result.total_rows == 0
        assert result.issues == []
