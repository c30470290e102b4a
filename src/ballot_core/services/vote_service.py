"""Vote service — exactly-once ballot recording.

``cast_vote`` records at most one ballot per (contest, voter), ever.  Callers
retry freely by resending the same idempotency key: a retry returns the
receipt of the original submission and writes nothing.

The recording step is a tagged outcome rather than a chain of conditionals:

* ``Inserted``: this call wrote the receipt, its selections and the audit event.
* ``ReturnedExisting``: a receipt with the same idempotency key already exists.
* ``RejectedDuplicateVote``: the voter already holds a receipt under another key.

The pre-insert lookups only shortcut the common cases.  Two requests racing
past them are separated by the unique constraints on ``vote_receipts``: the
loser's insert fails, its transaction is rolled back, and the committed
winner is re-read to decide between ``ReturnedExisting`` and
``RejectedDuplicateVote``.  No process-local lock is involved, so the
guarantee holds across any number of workers and server instances.
"""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_core.core.errors import (
    BadRequestError,
    BallotError,
    ConflictError,
    ForbiddenError,
    InternalError,
    NotFoundError,
)
from ballot_core.core.logging import component_logger
from ballot_core.models.base import utcnow
from ballot_core.models.election import Candidate, Contest, Election
from ballot_core.models.vote import VoteReceipt, VoteSelection
from ballot_core.schemas.vote import CastVoteRequest, VoteReceiptResponse
from ballot_core.services import audit_service, eligibility_service, lifecycle_service

log = component_logger("vote")

MAX_IDEMPOTENCY_KEY_LENGTH = 255
ALREADY_VOTED_MESSAGE = "voter has already submitted a vote"


@dataclass(frozen=True)
class Inserted:
    """This call committed a new receipt."""

    receipt: VoteReceipt


@dataclass(frozen=True)
class ReturnedExisting:
    """A receipt with the same idempotency key was already committed."""

    receipt: VoteReceipt


@dataclass(frozen=True)
class RejectedDuplicateVote:
    """The voter already holds a receipt for this contest under a different key."""

    existing_receipt_id: uuid.UUID


CastOutcome = Inserted | ReturnedExisting | RejectedDuplicateVote


def _validate_ballot_shape(idempotency_key: str, candidate_ids: Sequence[uuid.UUID]) -> None:
    if not idempotency_key or not idempotency_key.strip():
        raise BadRequestError("idempotency_key is required")
    if len(idempotency_key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise BadRequestError(f"idempotency_key must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters")
    if not candidate_ids:
        raise BadRequestError("selections cannot be empty")
    if len(set(candidate_ids)) != len(candidate_ids):
        raise BadRequestError("selections contain a duplicate candidate")


async def _check_preconditions(
    session: AsyncSession,
    *,
    contest_id: uuid.UUID,
    voter_id: uuid.UUID,
    candidate_ids: Sequence[uuid.UUID],
    now: datetime,
) -> tuple[Contest, Election]:
    contest, election = await lifecycle_service.get_contest_with_election(session, contest_id)

    if not lifecycle_service.is_open_for_voting(election, now):
        raise BadRequestError("election is not open for voting")

    if not await eligibility_service.is_eligible(session, contest_id, voter_id):
        raise ForbiddenError("voter is not on the roll for this contest")

    if len(candidate_ids) > contest.max_selections:
        raise BadRequestError(f"at most {contest.max_selections} selection(s) allowed for this contest")

    known = set(
        (
            await session.execute(
                select(Candidate.id).where(Candidate.contest_id == contest_id, Candidate.id.in_(candidate_ids))
            )
        )
        .scalars()
        .all()
    )
    if len(known) != len(candidate_ids):
        raise BadRequestError("selections include a candidate outside this contest")

    return contest, election


async def _find_receipt(
    session: AsyncSession,
    contest_id: uuid.UUID,
    voter_id: uuid.UUID,
    idempotency_key: str | None = None,
) -> VoteReceipt | None:
    query = select(VoteReceipt).where(VoteReceipt.contest_id == contest_id, VoteReceipt.voter_id == voter_id)
    if idempotency_key is not None:
        query = query.where(VoteReceipt.idempotency_key == idempotency_key)
    return (await session.execute(query)).scalar_one_or_none()


def _violated_constraint(exc: IntegrityError) -> str | None:
    """Best-effort constraint name from the driver error, for logging."""
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        name = getattr(candidate, "constraint_name", None)
        if name:
            return name
    return None


async def _resolve_constraint_violation(
    session: AsyncSession,
    exc: IntegrityError,
    *,
    contest_id: uuid.UUID,
    voter_id: uuid.UUID,
    idempotency_key: str,
) -> CastOutcome:
    """Classify a failed receipt insert by the receipt that won the race.

    The winner's key equal to ours means the (contest, voter, key) constraint
    fired: the request is a duplicate retry.  Any other key means only the
    (contest, voter) constraint fired: a second, distinct ballot.
    """
    await session.rollback()
    winner = await _find_receipt(session, contest_id, voter_id)
    constraint = _violated_constraint(exc)
    if winner is None:
        log.error(f"Receipt insert for contest {contest_id} violated {constraint or 'a constraint'} with no winner")
        raise InternalError() from exc

    log.info(
        f"Receipt insert for contest {contest_id} voter {voter_id} lost a race "
        f"({constraint or 'unique constraint'}); winner {winner.id}"
    )
    if winner.idempotency_key == idempotency_key:
        return ReturnedExisting(winner)
    return RejectedDuplicateVote(winner.id)


async def _record(
    session: AsyncSession,
    *,
    contest_id: uuid.UUID,
    election_id: uuid.UUID,
    voter_id: uuid.UUID,
    idempotency_key: str,
    candidate_ids: Sequence[uuid.UUID],
) -> CastOutcome:
    """Write the receipt, its selections and the audit event, or classify why not.

    Takes plain ids: a failed flush leaves every loaded instance unusable
    until the rollback in ``_resolve_constraint_violation``.
    """
    existing = await _find_receipt(session, contest_id, voter_id, idempotency_key)
    if existing is not None:
        return ReturnedExisting(existing)

    other = await _find_receipt(session, contest_id, voter_id)
    if other is not None:
        return RejectedDuplicateVote(other.id)

    receipt = VoteReceipt(
        id=uuid.uuid4(),
        election_id=election_id,
        contest_id=contest_id,
        voter_id=voter_id,
        idempotency_key=idempotency_key,
    )
    session.add(receipt)
    try:
        await session.flush()
    except IntegrityError as exc:
        return await _resolve_constraint_violation(
            session, exc, contest_id=contest_id, voter_id=voter_id, idempotency_key=idempotency_key
        )

    session.add_all(
        [
            VoteSelection(
                receipt_id=receipt.id,
                election_id=election_id,
                contest_id=contest_id,
                candidate_id=candidate_id,
            )
            for candidate_id in candidate_ids
        ]
    )
    await audit_service.record_event(
        session,
        event_type=audit_service.VOTE_CAST,
        actor_id=voter_id,
        election_id=election_id,
        contest_id=contest_id,
        receipt_id=receipt.id,
        metadata={"receipt_id": str(receipt.id), "selection_count": len(candidate_ids)},
    )
    try:
        await session.commit()
    except IntegrityError as exc:
        # Under SQLite the unique check can surface only at commit.
        return await _resolve_constraint_violation(
            session, exc, contest_id=contest_id, voter_id=voter_id, idempotency_key=idempotency_key
        )
    return Inserted(receipt)


async def cast_vote(
    session: AsyncSession,
    *,
    contest_id: uuid.UUID,
    voter_id: uuid.UUID,
    idempotency_key: str,
    selections: Sequence[uuid.UUID],
    now: datetime | None = None,
) -> VoteReceipt:
    """Record a voter's ballot for a contest exactly once.

    Args:
        session: Async database session. Must not have a transaction with
            pending writes; this call commits or rolls back.
        contest_id: The contest being voted in.
        voter_id: The authenticated voter.
        idempotency_key: Caller-generated key, reused verbatim on retries.
        selections: Chosen candidate ids, in ballot order.
        now: Evaluation time for the voting window (defaults to current UTC).

    Returns:
        The committed receipt: newly written, or the original one on a retry.

    Raises:
        BadRequestError: Malformed ballot, or the election is not open for voting.
        NotFoundError: Unknown contest.
        ForbiddenError: The voter is not on the contest's roll.
        ConflictError: The voter already cast a different ballot in this contest.
        InternalError: Storage failure; nothing was written.
    """
    candidate_ids = list(selections)
    _validate_ballot_shape(idempotency_key, candidate_ids)
    now = now or utcnow()

    try:
        contest, _ = await _check_preconditions(
            session, contest_id=contest_id, voter_id=voter_id, candidate_ids=candidate_ids, now=now
        )
        outcome = await _record(
            session,
            contest_id=contest_id,
            election_id=contest.election_id,
            voter_id=voter_id,
            idempotency_key=idempotency_key,
            candidate_ids=candidate_ids,
        )
    except BallotError:
        await session.rollback()
        raise
    except SQLAlchemyError as exc:
        await session.rollback()
        log.error(f"cast_vote for contest {contest_id} failed: {type(exc).__name__}")
        raise InternalError() from exc

    match outcome:
        case Inserted(receipt):
            log.info(f"Recorded receipt {receipt.id} for contest {contest_id} ({len(candidate_ids)} selection(s))")
            return receipt
        case ReturnedExisting(receipt):
            # Read-only transaction; commit keeps the loaded receipt unexpired.
            await session.commit()
            log.info(f"Returned existing receipt {receipt.id} for retried ballot in contest {contest_id}")
            return receipt
        case RejectedDuplicateVote(existing_receipt_id):
            await session.commit()
            log.warning(
                f"Rejected second ballot from voter {voter_id} in contest {contest_id} "
                f"(existing receipt {existing_receipt_id})"
            )
            raise ConflictError(ALREADY_VOTED_MESSAGE)


async def cast_vote_for_election(
    session: AsyncSession,
    *,
    election_id: uuid.UUID,
    voter_id: uuid.UUID,
    request: CastVoteRequest,
    now: datetime | None = None,
) -> VoteReceipt:
    """Cast a ballot in an election's default contest."""
    contest = await lifecycle_service.get_default_contest(session, election_id)
    return await cast_vote(
        session,
        contest_id=contest_id,
        voter_id=voter_id,
        idempotency_key=request.idempotency_key,
        selections=request.candidate_ids,
        now=now,
    )


async def get_receipt(session: AsyncSession, receipt_id: uuid.UUID) -> VoteReceipt:
    """Get a receipt by ID.

    Raises:
        NotFoundError: If no receipt has this ID.
    """
    receipt = await session.get(VoteReceipt, receipt_id)
    if receipt is None:
        raise NotFoundError("receipt not found")
    return receipt


def receipt_response(receipt: VoteReceipt) -> VoteReceiptResponse:
    """Build the collaborator-facing view of a receipt."""
    return VoteReceiptResponse(
        receipt_id=receipt.id,
        election_id=receipt.election_id,
        contest_id=receipt.contest_id,
        submitted_at=lifecycle_service.as_utc(receipt.created_at),
    )
