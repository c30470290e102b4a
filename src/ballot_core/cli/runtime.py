"""Shared plumbing for CLI commands that talk to the database."""

import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import typer
from sqlalchemy.ext.asyncio import AsyncSession

from ballot_core.core.errors import BallotError


@asynccontextmanager
async def cli_session() -> AsyncIterator[AsyncSession]:
    """Open a session against the configured database for one command.

    A ``BallotError`` escaping the block is printed to stderr and turned into
    exit code 1.  The engine is disposed either way.
    """
    from ballot_core.core.config import get_settings
    from ballot_core.core.database import dispose_engine, get_session_factory, init_engine_from_settings

    settings = get_settings()
    init_engine_from_settings(settings)
    try:
        factory = get_session_factory()
        async with factory() as session:
            yield session
    except BallotError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(code=1) from e
    finally:
        await dispose_engine()


def parse_uuid(value: str, label: str) -> uuid.UUID:
    """Parse a UUID option, failing the command with a readable message."""
    try:
        return uuid.UUID(value)
    except ValueError as e:
        raise typer.BadParameter(f"{label} must be a UUID") from e


def parse_timestamp(value: str, label: str) -> datetime:
    """Parse an ISO-8601 timestamp option; naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise typer.BadParameter(f"{label} must be an ISO-8601 timestamp") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
