"""Audit logging service.

Appends immutable audit events and queries them.  ``record_event`` never
commits: the event becomes durable together with the caller's transaction
or not at all.
"""

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_core.models.audit_event import AuditEvent

VOTE_CAST = "vote_cast"
ELECTION_CREATED = "election_created"
ELECTION_PUBLISHED = "election_published"
ELECTION_CLOSED = "election_closed"


async def record_event(
    session: AsyncSession,
    *,
    event_type: str,
    election_id: uuid.UUID,
    actor_id: uuid.UUID | None = None,
    contest_id: uuid.UUID | None = None,
    receipt_id: uuid.UUID | None = None,
    metadata: dict | None = None,
) -> AuditEvent:
    """Add an audit event to the current transaction.

    Args:
        session: The database session whose transaction the event joins.
        event_type: The event name (vote_cast, election_published, ...).
        election_id: The election the event belongs to.
        actor_id: The acting user, if known.
        contest_id: The contest concerned, if any.
        receipt_id: The vote receipt concerned, if any.
        metadata: Additional context. Must not contain ballot selections.

    Returns:
        The pending AuditEvent, flushed but not committed.
    """
    event = AuditEvent(
        event_type=event_type,
        actor_id=actor_id,
        election_id=election_id,
        contest_id=contest_id,
        receipt_id=receipt_id,
        event_metadata=metadata,
    )
    session.add(event)
    await session.flush()
    return event


async def query_audit_events(
    session: AsyncSession,
    *,
    election_id: uuid.UUID | None = None,
    event_type: str | None = None,
    actor_id: uuid.UUID | None = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[AuditEvent], int]:
    """Query audit events with optional filters, newest first.

    Args:
        session: The database session.
        election_id: Filter by election.
        event_type: Filter by event name.
        actor_id: Filter by acting user.
        page: Page number (1-based).
        page_size: Items per page.

    Returns:
        Tuple of (audit events, total count).
    """
    query = select(AuditEvent)
    count_query = select(func.count(AuditEvent.id))

    if election_id is not None:
        query = query.where(AuditEvent.election_id == election_id)
        count_query = count_query.where(AuditEvent.election_id == election_id)
    if event_type is not None:
        query = query.where(AuditEvent.event_type == event_type)
        count_query = count_query.where(AuditEvent.event_type == event_type)
    if actor_id is not None:
        query = query.where(AuditEvent.actor_id == actor_id)
        count_query = count_query.where(AuditEvent.actor_id == actor_id)

    total = (await session.execute(count_query)).scalar_one()

    offset = (page - 1) * page_size
    query = query.order_by(AuditEvent.created_at.desc(), AuditEvent.id).offset(offset).limit(page_size)
    result = await session.execute(query)
    events = list(result.scalars().all())

    return events, total
