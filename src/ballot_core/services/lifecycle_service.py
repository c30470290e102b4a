"""Lifecycle service — election/contest/candidate state and time windows.

Elections move draft -> published -> closed and never back.  Contests,
candidates and voter rolls may only change while their election is draft.
Status transitions are conditional updates (``WHERE status = <expected>``),
so concurrent publishers or closers cannot both succeed.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_core.core.database import storage_errors_as_internal
from ballot_core.core.errors import BadRequestError, ConflictError, NotFoundError
from ballot_core.core.logging import component_logger
from ballot_core.models.base import utcnow
from ballot_core.models.election import Candidate, Contest, Election, ElectionStatus
from ballot_core.models.voter_roll import VoterRollEntry
from ballot_core.schemas.election import (
    CandidateCreateRequest,
    CandidateUpdateRequest,
    ContestCreateRequest,
    ContestUpdateRequest,
    ElectionCreateRequest,
    ElectionUpdateRequest,
)
from ballot_core.services import audit_service

log = component_logger("lifecycle")

DRAFT_ONLY_MESSAGE = "only draft elections can be modified"


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _validate_window(opens_at: datetime, closes_at: datetime) -> None:
    if as_utc(opens_at) >= as_utc(closes_at):
        raise BadRequestError("opens_at must be earlier than closes_at")


def is_open_for_voting(election: Election, now: datetime) -> bool:
    """Whether ballots may be cast: published and ``opens_at <= now < closes_at``."""
    if election.status != ElectionStatus.PUBLISHED:
        return False
    return as_utc(election.opens_at) <= as_utc(now) < as_utc(election.closes_at)


# --- Elections ---


async def create_election(
    session: AsyncSession,
    request: ElectionCreateRequest,
    *,
    actor_id: uuid.UUID | None = None,
    default_max_selections: int = 1,
) -> Election:
    """Create a draft election together with its default contest.

    Both rows are written in one transaction, so an election is never
    observable without its default contest.

    Args:
        session: Async database session.
        request: Election creation request.
        actor_id: The user creating the election, recorded in the audit trail.
        default_max_selections: max_selections for the default contest.

    Returns:
        The created Election instance.

    Raises:
        BadRequestError: If the title is blank or the window is not opens_at < closes_at.
    """
    title = request.title.strip()
    if not title:
        raise BadRequestError("election title is required")
    _validate_window(request.opens_at, request.closes_at)
    if default_max_selections < 1:
        raise BadRequestError("max_selections must be >= 1")

    async with storage_errors_as_internal(session, "create_election"):
        election = Election(
            id=uuid.uuid4(),
            organization_id=request.organization_id,
            title=title,
            description=request.description,
            opens_at=as_utc(request.opens_at),
            closes_at=as_utc(request.closes_at),
            status=ElectionStatus.DRAFT,
        )
        session.add(election)
        session.add(
            Contest(
                election_id=election.id,
                title=title,
                description=request.description,
                max_selections=default_max_selections,
                contest_metadata={},
                is_default=True,
            )
        )
        await session.flush()
        await audit_service.record_event(
            session,
            event_type=audit_service.ELECTION_CREATED,
            actor_id=actor_id,
            election_id=election.id,
        )
        await session.commit()

    log.info(f"Created election {election.id} ({title}) with default contest")
    return election


async def get_election(session: AsyncSession, election_id: uuid.UUID) -> Election:
    """Get an election by ID.

    Raises:
        NotFoundError: If no election has this ID.
    """
    election = await session.get(Election, election_id, populate_existing=True)
    if election is None:
        raise NotFoundError("election not found")
    return election


async def list_elections(
    session: AsyncSession,
    *,
    organization_id: uuid.UUID | None = None,
    status: str | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Election], int]:
    """List elections newest first.

    Returns:
        Tuple of (elections, total count).
    """
    query = select(Election)
    count_query = select(func.count(Election.id))
    if organization_id is not None:
        query = query.where(Election.organization_id == organization_id)
        count_query = count_query.where(Election.organization_id == organization_id)
    if status is not None:
        query = query.where(Election.status == status)
        count_query = count_query.where(Election.status == status)

    total = (await session.execute(count_query)).scalar_one()
    query = query.order_by(Election.created_at.desc(), Election.id).offset((page - 1) * page_size).limit(page_size)
    result = await session.execute(query)
    return list(result.scalars().all()), total


async def update_election(
    session: AsyncSession,
    election_id: uuid.UUID,
    request: ElectionUpdateRequest,
) -> Election:
    """Apply a partial update to a draft election.

    Raises:
        NotFoundError: If the election does not exist.
        ConflictError: If the election is no longer draft.
        BadRequestError: If the resulting window or title is invalid.
    """
    changes = request.model_dump(exclude_unset=True)

    if "title" in changes:
        changes["title"] = (changes["title"] or "").strip()
        if not changes["title"]:
            raise BadRequestError("election title is required")
    for bound in ("opens_at", "closes_at"):
        if bound in changes and changes[bound] is None:
            raise BadRequestError(f"{bound} cannot be cleared")

    election = await require_draft_election(session, election_id)
    try:
        _validate_window(changes.get("opens_at", election.opens_at), changes.get("closes_at", election.closes_at))
    except BadRequestError:
        await session.rollback()
        raise

    async with storage_errors_as_internal(session, "update_election"):
        for field, value in changes.items():
            if field in ("opens_at", "closes_at"):
                value = as_utc(value)
            setattr(election, field, value)
        await session.commit()
    return election


async def _transition(
    session: AsyncSession,
    election_id: uuid.UUID,
    *,
    from_status: ElectionStatus,
    to_status: ElectionStatus,
    event_type: str,
    actor_id: uuid.UUID | None,
) -> Election:
    await get_election(session, election_id)

    async with storage_errors_as_internal(session, f"{to_status} election"):
        result = await session.execute(
            update(Election)
            .where(Election.id == election_id, Election.status == from_status)
            .values(status=to_status, updated_at=utcnow())
        )
        if result.rowcount != 1:
            await session.rollback()
            raise ConflictError(f"only {from_status} elections can be {to_status}")
        await audit_service.record_event(
            session,
            event_type=event_type,
            actor_id=actor_id,
            election_id=election_id,
            metadata={"from": str(from_status), "to": str(to_status)},
        )
        await session.commit()
        election = await session.get(Election, election_id, populate_existing=True)

    log.info(f"Election {election_id} moved {from_status} -> {to_status}")
    return election  # type: ignore[return-value]


async def publish_election(
    session: AsyncSession,
    election_id: uuid.UUID,
    *,
    actor_id: uuid.UUID | None = None,
) -> Election:
    """Move an election from draft to published.

    Raises:
        NotFoundError: If the election does not exist.
        ConflictError: If the election is not draft.
    """
    return await _transition(
        session,
        election_id,
        from_status=ElectionStatus.DRAFT,
        to_status=ElectionStatus.PUBLISHED,
        event_type=audit_service.ELECTION_PUBLISHED,
        actor_id=actor_id,
    )


async def close_election(
    session: AsyncSession,
    election_id: uuid.UUID,
    *,
    actor_id: uuid.UUID | None = None,
) -> Election:
    """Move an election from published to closed.

    Raises:
        NotFoundError: If the election does not exist.
        ConflictError: If the election is not published.
    """
    return await _transition(
        session,
        election_id,
        from_status=ElectionStatus.PUBLISHED,
        to_status=ElectionStatus.CLOSED,
        event_type=audit_service.ELECTION_CLOSED,
        actor_id=actor_id,
    )


def _election_for_write(election_id: uuid.UUID) -> Select:
    return (
        select(Election)
        .where(Election.id == election_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def _contest_for_write(contest_id: uuid.UUID) -> Select:
    return (
        select(Contest, Election)
        .join(Election, Election.id == Contest.election_id)
        .where(Contest.id == contest_id)
        .with_for_update(of=Election)
        .execution_options(populate_existing=True)
    )


async def require_draft_election(session: AsyncSession, election_id: uuid.UUID) -> Election:
    """Return the election if it is still draft, locking its row for the rest of the transaction.

    A concurrent publish or close waits for the caller to commit, so draft-only
    writes cannot land after the status change.  SQLite ignores the lock and
    serializes writers on its own.  A non-draft election ends the transaction
    before ``ConflictError`` is raised, releasing the lock.

    Raises:
        NotFoundError: If the election does not exist.
        ConflictError: If the election is published or closed.
    """
    election = (await session.execute(_election_for_write(election_id))).scalar_one_or_none()
    if election is None:
        raise NotFoundError("election not found")
    if election.status != ElectionStatus.DRAFT:
        await session.rollback()
        raise ConflictError(DRAFT_ONLY_MESSAGE)
    return election


# --- Contests ---


async def get_contest(session: AsyncSession, contest_id: uuid.UUID) -> Contest:
    """Get a contest by ID.

    Raises:
        NotFoundError: If no contest has this ID.
    """
    contest = await session.get(Contest, contest_id)
    if contest is None:
        raise NotFoundError("contest not found")
    return contest


async def get_contest_with_election(session: AsyncSession, contest_id: uuid.UUID) -> tuple[Contest, Election]:
    """Load a contest and its parent election in one query, refreshing any cached copies.

    Raises:
        NotFoundError: If no contest has this ID.
    """
    row = (
        await session.execute(
            select(Contest, Election)
            .join(Election, Election.id == Contest.election_id)
            .where(Contest.id == contest_id)
            .execution_options(populate_existing=True)
        )
    ).one_or_none()
    if row is None:
        raise NotFoundError("contest not found")
    return row[0], row[1]


async def require_draft_contest(session: AsyncSession, contest_id: uuid.UUID) -> Contest:
    """Return the contest if its election is still draft, locking the election row.

    Raises:
        NotFoundError: If the contest does not exist.
        ConflictError: If the contest's election is published or closed.
    """
    row = (await session.execute(_contest_for_write(contest_id))).one_or_none()
    if row is None:
        raise NotFoundError("contest not found")
    contest, election = row
    if election.status != ElectionStatus.DRAFT:
        await session.rollback()
        raise ConflictError(DRAFT_ONLY_MESSAGE)
    return contest


async def get_default_contest(session: AsyncSession, election_id: uuid.UUID) -> Contest:
    """Resolve an election to its default contest.

    Raises:
        NotFoundError: If the election (or its default contest) does not exist.
    """
    result = await session.execute(
        select(Contest).where(Contest.election_id == election_id, Contest.is_default.is_(True))
    )
    contest = result.scalar_one_or_none()
    if contest is None:
        raise NotFoundError("election not found")
    return contest


async def list_contests(session: AsyncSession, election_id: uuid.UUID) -> list[Contest]:
    """List an election's contests, default contest first."""
    await get_election(session, election_id)
    result = await session.execute(
        select(Contest)
        .where(Contest.election_id == election_id)
        .order_by(Contest.is_default.desc(), Contest.created_at, Contest.id)
    )
    return list(result.scalars().all())


def _contest_title(title: str) -> str:
    title = title.strip()
    if not title:
        raise BadRequestError("contest title is required")
    return title


def _max_selections(value: int) -> int:
    if value < 1:
        raise BadRequestError("max_selections must be >= 1")
    return value


async def create_contest(
    session: AsyncSession,
    election_id: uuid.UUID,
    request: ContestCreateRequest,
) -> Contest:
    """Add a non-default contest to a draft election."""
    title = _contest_title(request.title)
    max_selections = _max_selections(1 if request.max_selections is None else request.max_selections)
    await require_draft_election(session, election_id)

    async with storage_errors_as_internal(session, "create_contest"):
        contest = Contest(
            election_id=election_id,
            title=title,
            description=request.description,
            max_selections=max_selections,
            contest_metadata=request.metadata or {},
            is_default=False,
        )
        session.add(contest)
        await session.commit()

    log.info(f"Created contest {contest.id} in election {election_id}")
    return contest


async def update_contest(
    session: AsyncSession,
    contest_id: uuid.UUID,
    request: ContestUpdateRequest,
) -> Contest:
    """Replace a draft contest's title, description, selection limit and metadata."""
    title = _contest_title(request.title)
    max_selections = _max_selections(request.max_selections)
    contest = await require_draft_contest(session, contest_id)

    async with storage_errors_as_internal(session, "update_contest"):
        contest.title = title
        contest.description = request.description
        contest.max_selections = max_selections
        contest.contest_metadata = request.metadata or {}
        await session.commit()
    return contest


async def delete_contest(session: AsyncSession, contest_id: uuid.UUID) -> None:
    """Delete a non-default contest of a draft election with its candidates and roll.

    Raises:
        BadRequestError: If the contest is the election's default contest.
    """
    contest = await require_draft_contest(session, contest_id)
    if contest.is_default:
        await session.rollback()
        raise BadRequestError("default contest cannot be deleted")

    async with storage_errors_as_internal(session, "delete_contest"):
        await session.execute(delete(VoterRollEntry).where(VoterRollEntry.contest_id == contest_id))
        await session.execute(delete(Candidate).where(Candidate.contest_id == contest_id))
        await session.delete(contest)
        await session.commit()

    log.info(f"Deleted contest {contest_id}")


# --- Candidates ---


async def list_candidates(session: AsyncSession, contest_id: uuid.UUID) -> list[Candidate]:
    """List a contest's candidates in creation order."""
    await get_contest(session, contest_id)
    result = await session.execute(
        select(Candidate).where(Candidate.contest_id == contest_id).order_by(Candidate.created_at, Candidate.id)
    )
    return list(result.scalars().all())


def _candidate_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise BadRequestError("candidate name is required")
    return name


async def create_candidate(
    session: AsyncSession,
    contest_id: uuid.UUID,
    request: CandidateCreateRequest,
) -> Candidate:
    """Add a candidate to a draft contest."""
    name = _candidate_name(request.name)
    contest = await require_draft_contest(session, contest_id)

    async with storage_errors_as_internal(session, "create_candidate"):
        candidate = Candidate(
            election_id=contest.election_id,
            contest_id=contest_id,
            name=name,
            manifesto=request.manifesto,
        )
        session.add(candidate)
        await session.commit()

    log.info(f"Created candidate {candidate.id} in contest {contest_id}")
    return candidate


async def _get_contest_candidate(session: AsyncSession, contest_id: uuid.UUID, candidate_id: uuid.UUID) -> Candidate:
    candidate = await session.get(Candidate, candidate_id)
    if candidate is None or candidate.contest_id != contest_id:
        await session.rollback()
        raise NotFoundError("candidate not found")
    return candidate


async def update_candidate(
    session: AsyncSession,
    contest_id: uuid.UUID,
    candidate_id: uuid.UUID,
    request: CandidateUpdateRequest,
) -> Candidate:
    """Rename a draft contest's candidate or change their manifesto."""
    await require_draft_contest(session, contest_id)
    candidate = await _get_contest_candidate(session, contest_id, candidate_id)
    name = _candidate_name(request.name)

    async with storage_errors_as_internal(session, "update_candidate"):
        candidate.name = name
        candidate.manifesto = request.manifesto
        await session.commit()
    return candidate


async def delete_candidate(session: AsyncSession, contest_id: uuid.UUID, candidate_id: uuid.UUID) -> None:
    """Remove a candidate from a draft contest."""
    await require_draft_contest(session, contest_id)
    candidate = await _get_contest_candidate(session, contest_id, candidate_id)

    async with storage_errors_as_internal(session, "delete_candidate"):
        await session.delete(candidate)
        await session.commit()
