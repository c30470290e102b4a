"""Eligibility service — per-contest voter rolls.

A voter may cast a ballot in a contest only if a ``VoterRollEntry`` exists
for the (contest, user) pair.  Roll inserts are idempotent: the unique
constraint on (contest_id, user_id) turns a repeated or concurrent insert of
the same pair into a no-op.
"""

import uuid
from collections.abc import Iterable

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_core.core.database import storage_errors_as_internal
from ballot_core.core.errors import BadRequestError
from ballot_core.core.logging import component_logger
from ballot_core.models.user import User
from ballot_core.models.voter_roll import VoterRollEntry
from ballot_core.schemas.common import PaginationMeta
from ballot_core.schemas.voter_roll import (
    PaginatedVoterRollResponse,
    RollImportIssue,
    RollImportResult,
    VoterRollMember,
)
from ballot_core.services import lifecycle_service

log = component_logger("eligibility")

# Rows per multi-VALUES insert and ids per IN lookup; keeps bound parameters under SQLite's limit.
_INSERT_BATCH_SIZE = 500
_LOOKUP_BATCH_SIZE = 500


async def is_eligible(session: AsyncSession, contest_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    """Whether the user is on the contest's voter roll."""
    result = await session.execute(
        select(VoterRollEntry.id).where(
            VoterRollEntry.contest_id == contest_id,
            VoterRollEntry.user_id == user_id,
        )
    )
    return result.first() is not None


def _insert_ignore_conflict(session: AsyncSession, values: list[dict]):  # noqa: ANN202
    """Build an INSERT ... ON CONFLICT (contest_id, user_id) DO NOTHING for the session's dialect."""
    dialect = session.get_bind().dialect.name
    builder = pg_insert if dialect == "postgresql" else sqlite_insert
    return (
        builder(VoterRollEntry).values(values).on_conflict_do_nothing(index_elements=["contest_id", "user_id"])
    )


async def _insert_entries(
    session: AsyncSession,
    *,
    election_id: uuid.UUID,
    contest_id: uuid.UUID,
    user_ids: list[uuid.UUID],
) -> int:
    inserted = 0
    for start in range(0, len(user_ids), _INSERT_BATCH_SIZE):
        values = [
            {"id": uuid.uuid4(), "election_id": election_id, "contest_id": contest_id, "user_id": user_id}
            for user_id in user_ids[start : start + _INSERT_BATCH_SIZE]
        ]
        result = await session.execute(_insert_ignore_conflict(session, values))
        inserted += max(result.rowcount, 0)
    return inserted


async def add_voter(session: AsyncSession, contest_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    """Put a user on a draft contest's roll.

    Returns:
        True if a new entry was written, False if the user was already on the roll.
    """
    contest = await lifecycle_service.require_draft_contest(session, contest_id)
    async with storage_errors_as_internal(session, "add_voter"):
        inserted = await _insert_entries(
            session, election_id=contest.election_id, contest_id=contest_id, user_ids=[user_id]
        )
        await session.commit()
    return inserted > 0


async def remove_voter(session: AsyncSession, contest_id: uuid.UUID, user_id: uuid.UUID) -> None:
    """Take a user off a draft contest's roll. Removing an absent user is a no-op."""
    await lifecycle_service.require_draft_contest(session, contest_id)
    async with storage_errors_as_internal(session, "remove_voter"):
        entry = (
            await session.execute(
                select(VoterRollEntry).where(
                    VoterRollEntry.contest_id == contest_id,
                    VoterRollEntry.user_id == user_id,
                )
            )
        ).scalar_one_or_none()
        if entry is not None:
            await session.delete(entry)
        await session.commit()


async def list_voters(
    session: AsyncSession,
    contest_id: uuid.UUID,
    *,
    page: int = 1,
    page_size: int = 100,
) -> PaginatedVoterRollResponse:
    """List a contest's roll ordered by email; users unknown to the directory sort last."""
    await lifecycle_service.get_contest(session, contest_id)

    total = (
        await session.execute(select(func.count(VoterRollEntry.id)).where(VoterRollEntry.contest_id == contest_id))
    ).scalar_one()
    rows = (
        await session.execute(
            select(VoterRollEntry.user_id, User.email, User.full_name)
            .outerjoin(User, User.id == VoterRollEntry.user_id)
            .where(VoterRollEntry.contest_id == contest_id)
            .order_by(User.email.is_(None), User.email, VoterRollEntry.user_id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).all()

    return PaginatedVoterRollResponse(
        items=[
            VoterRollMember(user_id=user_id, email=email, full_name=full_name) for user_id, email, full_name in rows
        ],
        pagination=PaginationMeta.build(total=total, page=page, page_size=page_size),
    )


async def _known_user_ids(session: AsyncSession, user_ids: list[uuid.UUID]) -> set[uuid.UUID]:
    found: set[uuid.UUID] = set()
    for start in range(0, len(user_ids), _LOOKUP_BATCH_SIZE):
        chunk = user_ids[start : start + _LOOKUP_BATCH_SIZE]
        found.update((await session.execute(select(User.id).where(User.id.in_(chunk)))).scalars().all())
    return found


async def _user_ids_by_email(session: AsyncSession, emails: list[str]) -> dict[str, uuid.UUID]:
    """Map lowercased emails to user ids.

    Addresses that differ only by case can coexist; the one that sorts first wins.
    """
    rows = []
    for start in range(0, len(emails), _LOOKUP_BATCH_SIZE):
        chunk = emails[start : start + _LOOKUP_BATCH_SIZE]
        query = select(User.id, User.email).where(func.lower(User.email).in_(chunk))
        rows.extend((await session.execute(query)).all())
    matches: dict[str, uuid.UUID] = {}
    for user_id, email in sorted(rows, key=lambda r: r.email):
        matches.setdefault(email.lower(), user_id)
    return matches


async def _resolve_identifiers(session: AsyncSession, identifiers: list[str]) -> dict[str, uuid.UUID | None]:
    """Resolve many identifiers with one lookup per kind and batch."""
    by_id: dict[str, uuid.UUID] = {}
    emails: set[str] = set()
    for identifier in identifiers:
        try:
            by_id[identifier] = uuid.UUID(identifier)
        except ValueError:
            emails.add(identifier.lower())

    known = await _known_user_ids(session, sorted(set(by_id.values())))
    matches = await _user_ids_by_email(session, sorted(emails))

    resolved: dict[str, uuid.UUID | None] = {}
    for identifier in identifiers:
        if identifier in by_id:
            resolved[identifier] = by_id[identifier] if by_id[identifier] in known else None
        else:
            resolved[identifier] = matches.get(identifier.lower())
    return resolved


async def resolve_identifier(session: AsyncSession, identifier: str) -> uuid.UUID | None:
    """Resolve a roster identifier to a user id.

    A UUID is matched against user ids; anything else is matched against
    email addresses case-insensitively.
    """
    async with storage_errors_as_internal(session, "resolve_identifier"):
        resolved = await _resolve_identifiers(session, [identifier])
    return resolved[identifier]


async def import_roll(
    session: AsyncSession,
    contest_id: uuid.UUID,
    rows: Iterable[tuple[int, str]],
    *,
    dry_run: bool = True,
    max_rows: int | None = None,
) -> RollImportResult:
    """Classify roster rows and, unless ``dry_run``, add the valid ones to the roll.

    Every row lands in exactly one category, evaluated in input order:
    ``user_not_found``, ``duplicate_in_payload`` (the same user appeared on an
    earlier row), ``already_in_roll``, or valid.  Issues keep the caller's
    1-based row numbers.  A dry run performs the same classification and
    writes nothing.

    Args:
        session: Async database session.
        contest_id: The contest whose roll is being populated.
        rows: ``(row_number, identifier)`` pairs from the roster parser.
        dry_run: Classify only.
        max_rows: Reject payloads with more rows than this.

    Returns:
        Counts per category and the ordered issue list.

    Raises:
        NotFoundError: If the contest does not exist.
        ConflictError: If the contest's election is not draft.
        BadRequestError: If the payload exceeds ``max_rows``.
    """
    contest = await lifecycle_service.require_draft_contest(session, contest_id)
    cleaned = [(row, identifier.strip()) for row, identifier in rows if identifier.strip()]
    if max_rows is not None and len(cleaned) > max_rows:
        raise BadRequestError(f"roll import accepts at most {max_rows} rows")

    async with storage_errors_as_internal(session, "import_roll"):
        existing = set(
            (await session.execute(select(VoterRollEntry.user_id).where(VoterRollEntry.contest_id == contest_id)))
            .scalars()
            .all()
        )
        resolved = await _resolve_identifiers(session, [identifier for _, identifier in cleaned])

    result = RollImportResult(dry_run=dry_run, total_rows=len(cleaned))
    seen: set[uuid.UUID] = set()
    valid_user_ids: list[uuid.UUID] = []

    for row, identifier in cleaned:
        user_id = resolved[identifier]
        if user_id is None:
            result.not_found_rows += 1
            result.issues.append(RollImportIssue(row=row, identifier=identifier, reason="user_not_found"))
            continue
        if user_id in seen:
            result.duplicate_rows += 1
            result.issues.append(RollImportIssue(row=row, identifier=identifier, reason="duplicate_in_payload"))
            continue
        seen.add(user_id)
        if user_id in existing:
            result.already_in_roll_rows += 1
            result.issues.append(RollImportIssue(row=row, identifier=identifier, reason="already_in_roll"))
            continue
        valid_user_ids.append(user_id)

    result.valid_rows = len(valid_user_ids)

    if dry_run:
        # Ends the read transaction and the election row lock.
        await session.commit()
    else:
        async with storage_errors_as_internal(session, "import_roll"):
            result.inserted_rows = await _insert_entries(
                session, election_id=contest.election_id, contest_id=contest_id, user_ids=valid_user_ids
            )
            await session.commit()

    log.info(
        f"Roll import for contest {contest_id} (dry_run={dry_run}): "
        f"{result.total_rows} rows, {result.valid_rows} valid, {result.inserted_rows} inserted, "
        f"{result.not_found_rows} not found, {result.duplicate_rows} duplicate, "
        f"{result.already_in_roll_rows} already in roll"
    )
    return result
