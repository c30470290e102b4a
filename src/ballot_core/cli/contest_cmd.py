"""CLI commands for contests and candidates of draft elections."""

import asyncio
import uuid
from typing import Annotated

import typer

from ballot_core.cli.runtime import cli_session, parse_uuid

contest_app = typer.Typer()


@contest_app.command("add")
def add(
    election_id: Annotated[str, typer.Option("--election-id", help="Draft election UUID")],
    title: Annotated[str, typer.Option("--title", help="Contest title")],
    max_selections: Annotated[int, typer.Option("--max-selections", help="Candidates a voter may choose")] = 1,
    description: Annotated[str | None, typer.Option("--description", help="Contest description")] = None,
) -> None:
    """Add a contest to a draft election."""
    asyncio.run(_add_impl(parse_uuid(election_id, "--election-id"), title, max_selections, description))


async def _add_impl(election_id: uuid.UUID, title: str, max_selections: int, description: str | None) -> None:
    """Async implementation of the add command."""
    from ballot_core.schemas.election import ContestCreateRequest
    from ballot_core.services import lifecycle_service

    request = ContestCreateRequest(title=title, description=description, max_selections=max_selections)
    async with cli_session() as session:
        contest = await lifecycle_service.create_contest(session, election_id, request)
        typer.echo(f"Created contest {contest.id}: {contest.title} (max {contest.max_selections})")


@contest_app.command("candidate-add")
def candidate_add(
    contest_id: Annotated[str, typer.Option("--contest-id", help="Contest UUID")],
    name: Annotated[str, typer.Option("--name", help="Candidate name")],
    manifesto: Annotated[str | None, typer.Option("--manifesto", help="Candidate manifesto")] = None,
) -> None:
    """Add a candidate to a contest of a draft election."""
    asyncio.run(_candidate_add_impl(parse_uuid(contest_id, "--contest-id"), name, manifesto))


async def _candidate_add_impl(contest_id: uuid.UUID, name: str, manifesto: str | None) -> None:
    """Async implementation of the candidate-add command."""
    from ballot_core.schemas.election import CandidateCreateRequest
    from ballot_core.services import lifecycle_service

    request = CandidateCreateRequest(name=name, manifesto=manifesto)
    async with cli_session() as session:
        candidate = await lifecycle_service.create_candidate(session, contest_id, request)
        typer.echo(f"Created candidate {candidate.id}: {candidate.name}")
