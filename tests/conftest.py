"""Shared test fixtures for async database sessions and seeded elections."""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ballot_core.core.config import Settings
from ballot_core.models.base import Base
from ballot_core.models.user import User
from ballot_core.schemas.election import CandidateCreateRequest, ContestCreateRequest, ElectionCreateRequest
from ballot_core.services import eligibility_service, lifecycle_service


def _enable_foreign_keys(dbapi_connection, _connection_record) -> None:  # type: ignore[no-untyped-def]
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def settings() -> Settings:
    """Test application settings."""
    return Settings(database_url="sqlite+aiosqlite:///:memory:", _env_file=None)  # type: ignore[call-arg]


@pytest.fixture
async def async_engine(settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create an in-memory async SQLite engine for testing."""
    engine = create_async_engine(settings.database_url, echo=False)
    event.listen(engine.sync_engine, "connect", _enable_foreign_keys)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Create a per-test async session."""
    session_factory = async_sessionmaker(async_engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(async_session: AsyncSession) -> Callable[..., Awaitable[uuid.UUID]]:
    """Factory that inserts a user and returns its id."""

    async def _make(email: str | None = None, full_name: str = "Test Voter") -> uuid.UUID:
        user_id = uuid.uuid4()
        async_session.add(
            User(id=user_id, email=email or f"{user_id.hex[:12]}@example.org", full_name=full_name, role="voter")
        )
        await async_session.commit()
        return user_id

    return _make


def election_request(
    *,
    title: str = "Board Election",
    opens_at: datetime | None = None,
    closes_at: datetime | None = None,
) -> ElectionCreateRequest:
    """Election request whose window is open right now unless overridden."""
    now = datetime.now(UTC)
    return ElectionCreateRequest(
        organization_id=uuid.uuid4(),
        title=title,
        opens_at=opens_at or now - timedelta(hours=1),
        closes_at=closes_at or now + timedelta(hours=1),
    )


@pytest.fixture
def make_election_request() -> Callable[..., ElectionCreateRequest]:
    """Factory for election creation requests."""
    return election_request


@dataclass
class SeededElection:
    """Ids of a seeded election; plain values stay readable after a session rollback."""

    election_id: uuid.UUID
    default_contest_id: uuid.UUID
    council_contest_id: uuid.UUID
    candidates: dict[str, uuid.UUID] = field(default_factory=dict)
    council_candidates: dict[str, uuid.UUID] = field(default_factory=dict)
    voters: list[uuid.UUID] = field(default_factory=list)


async def seed_election(
    session: AsyncSession,
    *,
    voter_count: int = 3,
    publish: bool = True,
    opens_at: datetime | None = None,
    closes_at: datetime | None = None,
) -> SeededElection:
    """Create an election with a single-choice default contest and a two-seat council contest.

    Alice, Bob and Carol stand in the default contest; Dana, Eli and Finn in
    the council contest.  Every seeded voter is on both rolls.
    """
    election = await lifecycle_service.create_election(
        session, election_request(opens_at=opens_at, closes_at=closes_at)
    )
    election_id = election.id
    default_contest = await lifecycle_service.get_default_contest(session, election_id)
    council = await lifecycle_service.create_contest(
        session, election_id, ContestCreateRequest(title="Council", max_selections=2)
    )
    seeded = SeededElection(
        election_id=election_id,
        default_contest_id=default_contest.id,
        council_contest_id=council.id,
    )

    for name in ("Alice", "Bob", "Carol"):
        candidate = await lifecycle_service.create_candidate(
            session, seeded.default_contest_id, CandidateCreateRequest(name=name)
        )
        seeded.candidates[name] = candidate.id
    for name in ("Dana", "Eli", "Finn"):
        candidate = await lifecycle_service.create_candidate(
            session, seeded.council_contest_id, CandidateCreateRequest(name=name)
        )
        seeded.council_candidates[name] = candidate.id

    for index in range(voter_count):
        user_id = uuid.uuid4()
        email = f"voter{index}-{user_id.hex[:8]}@example.org"
        session.add(User(id=user_id, email=email, full_name=f"Voter {index}", role="voter"))
        await session.commit()
        await eligibility_service.add_voter(session, seeded.default_contest_id, user_id)
        await eligibility_service.add_voter(session, seeded.council_contest_id, user_id)
        seeded.voters.append(user_id)

    if publish:
        await lifecycle_service.publish_election(session, election_id)
    return seeded


@pytest.fixture
async def open_election(async_session: AsyncSession) -> SeededElection:
    """A published election whose voting window contains the current time."""
    return await seed_election(async_session)


@pytest.fixture
async def draft_election(async_session: AsyncSession) -> SeededElection:
    """A seeded election still in draft."""
    return await seed_election(async_session, publish=False)


@pytest.fixture
def seeder(async_session: AsyncSession) -> Callable[..., Awaitable[SeededElection]]:
    """Factory for seeded elections with custom windows or publish state."""

    async def _seed(**kwargs: object) -> SeededElection:
        return await seed_election(async_session, **kwargs)  # type: ignore[arg-type]

    return _seed
