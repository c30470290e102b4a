"""Tally service — on-demand result counting for closed elections."""

import uuid

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_core.core.errors import ForbiddenError
from ballot_core.core.logging import component_logger
from ballot_core.models.election import Candidate, Election, ElectionStatus
from ballot_core.models.vote import VoteSelection
from ballot_core.schemas.vote import TallyEntry, TallyResult
from ballot_core.services import lifecycle_service

log = component_logger("tally")

RESULTS_NOT_AVAILABLE_MESSAGE = "results are available only after the election is closed"


def _require_closed(election: Election) -> None:
    if election.status != ElectionStatus.CLOSED:
        raise ForbiddenError(RESULTS_NOT_AVAILABLE_MESSAGE)


def _totals_query() -> Select:
    total = func.count(VoteSelection.id).label("total")
    return (
        select(Candidate.id, Candidate.name, total)
        .outerjoin(VoteSelection, VoteSelection.candidate_id == Candidate.id)
        .group_by(Candidate.id, Candidate.name)
        .order_by(total.desc(), Candidate.name, Candidate.id)
    )


async def _entries(session: AsyncSession, query: Select) -> list[TallyEntry]:
    rows = (await session.execute(query)).all()
    return [TallyEntry(candidate_id=candidate_id, name=name, total=total) for candidate_id, name, total in rows]


async def tally_contest(session: AsyncSession, contest_id: uuid.UUID) -> TallyResult:
    """Count committed selections per candidate of one contest.

    Candidates nobody chose are listed with a zero total.

    Raises:
        NotFoundError: If the contest does not exist.
        ForbiddenError: If the election is not closed.
    """
    contest, election = await lifecycle_service.get_contest_with_election(session, contest_id)
    _require_closed(election)

    results = await _entries(session, _totals_query().where(Candidate.contest_id == contest_id))
    log.info(f"Tallied contest {contest_id}: {len(results)} candidate(s)")
    return TallyResult(
        election_id=election.id,
        election_title=election.title,
        contest_id=contest.id,
        contest_title=contest.title,
        results=results,
    )


async def tally_election(session: AsyncSession, election_id: uuid.UUID) -> TallyResult:
    """Count committed selections per candidate across every contest of an election.

    Raises:
        NotFoundError: If the election does not exist.
        ForbiddenError: If the election is not closed.
    """
    election = await lifecycle_service.get_election(session, election_id)
    _require_closed(election)

    results = await _entries(session, _totals_query().where(Candidate.election_id == election_id))
    log.info(f"Tallied election {election_id}: {len(results)} candidate(s)")
    return TallyResult(election_id=election.id, election_title=election.title, results=results)
