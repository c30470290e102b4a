"""CLI commands for the election lifecycle and results."""

import asyncio
import json
import uuid
from datetime import datetime
from typing import Annotated

import typer

from ballot_core.cli.runtime import cli_session, parse_timestamp, parse_uuid
from ballot_core.schemas.vote import TallyResult

election_app = typer.Typer()


@election_app.command("create")
def create(
    organization_id: Annotated[str, typer.Option("--org", help="Owning organization UUID")],
    title: Annotated[str, typer.Option("--title", help="Election title")],
    opens_at: Annotated[str, typer.Option("--opens-at", help="Voting opens (ISO-8601, UTC if no offset)")],
    closes_at: Annotated[str, typer.Option("--closes-at", help="Voting closes (ISO-8601, UTC if no offset)")],
    description: Annotated[str | None, typer.Option("--description", help="Election description")] = None,
    max_selections: Annotated[
        int | None,
        typer.Option("--max-selections", help="Selection limit of the default contest"),
    ] = None,
) -> None:
    """Create a draft election with its default contest."""
    asyncio.run(
        _create_impl(
            parse_uuid(organization_id, "--org"),
            title,
            parse_timestamp(opens_at, "--opens-at"),
            parse_timestamp(closes_at, "--closes-at"),
            description,
            max_selections,
        )
    )


async def _create_impl(
    organization_id: uuid.UUID,
    title: str,
    opens_at: datetime,
    closes_at: datetime,
    description: str | None,
    max_selections: int | None,
) -> None:
    """Async implementation of the create command."""
    from ballot_core.core.config import get_settings
    from ballot_core.schemas.election import ElectionCreateRequest
    from ballot_core.services import lifecycle_service

    settings = get_settings()
    request = ElectionCreateRequest(
        organization_id=organization_id,
        title=title,
        description=description,
        opens_at=opens_at,
        closes_at=closes_at,
    )
    async with cli_session() as session:
        election = await lifecycle_service.create_election(
            session,
            request,
            default_max_selections=max_selections or settings.default_max_selections,
        )
        typer.echo(f"Created election {election.id}: {election.title} ({election.status})")


@election_app.command("publish")
def publish(
    election_id: Annotated[str, typer.Argument(help="Election UUID")],
) -> None:
    """Move a draft election to published."""
    asyncio.run(_transition_impl(parse_uuid(election_id, "election_id"), "publish"))


@election_app.command("close")
def close(
    election_id: Annotated[str, typer.Argument(help="Election UUID")],
) -> None:
    """Move a published election to closed."""
    asyncio.run(_transition_impl(parse_uuid(election_id, "election_id"), "close"))


async def _transition_impl(election_id: uuid.UUID, action: str) -> None:
    """Async implementation of the publish and close commands."""
    from ballot_core.services import lifecycle_service

    transition = lifecycle_service.publish_election if action == "publish" else lifecycle_service.close_election
    async with cli_session() as session:
        election = await transition(session, election_id)
        typer.echo(f"Election {election.id} is now {election.status}")


@election_app.command("list")
def list_elections(
    org: Annotated[str | None, typer.Option("--org", help="Filter by organization UUID")] = None,
    status: Annotated[str | None, typer.Option("--status", help="Filter: draft, published or closed")] = None,
    page: Annotated[int, typer.Option("--page", min=1, help="Page number")] = 1,
    page_size: Annotated[int, typer.Option("--page-size", min=1, max=100, help="Elections per page")] = 20,
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON instead of text")] = False,
) -> None:
    """List elections, newest first."""
    organization_id = parse_uuid(org, "org") if org else None
    asyncio.run(_list_impl(organization_id, status, page, page_size, as_json))


async def _list_impl(
    organization_id: uuid.UUID | None, status: str | None, page: int, page_size: int, as_json: bool
) -> None:
    """Async implementation of the list command."""
    from ballot_core.schemas.common import PaginationMeta
    from ballot_core.schemas.election import ElectionSummary, PaginatedElectionListResponse
    from ballot_core.services import lifecycle_service

    async with cli_session() as session:
        elections, total = await lifecycle_service.list_elections(
            session, organization_id=organization_id, status=status, page=page, page_size=page_size
        )
        response = PaginatedElectionListResponse(
            items=[ElectionSummary.model_validate(e) for e in elections],
            pagination=PaginationMeta.build(total=total, page=page, page_size=page_size),
        )

    if as_json:
        typer.echo(response.model_dump_json(indent=2))
        return
    for item in response.items:
        typer.echo(f"{item.id}  {item.status:<9}  {item.title}")
    meta = response.pagination
    typer.echo(f"Page {meta.page}/{max(meta.total_pages, 1)} ({meta.total} election(s))")


@election_app.command("show")
def show(
    election_id: Annotated[str, typer.Argument(help="Election UUID")],
    as_json: Annotated[bool, typer.Option("--json", help="Print JSON instead of text")] = False,
) -> None:
    """Show an election with its contests and candidates."""
    asyncio.run(_show_impl(parse_uuid(election_id, "election_id"), as_json))


async def _show_impl(election_id: uuid.UUID, as_json: bool) -> None:
    """Async implementation of the show command."""
    from ballot_core.schemas.election import CandidateSummary, ContestSummary, ElectionSummary
    from ballot_core.services import lifecycle_service

    async with cli_session() as session:
        election = await lifecycle_service.get_election(session, election_id)
        if as_json:
            contests = []
            for contest in await lifecycle_service.list_contests(session, election_id):
                candidates = await lifecycle_service.list_candidates(session, contest.id)
                contests.append(
                    {
                        **ContestSummary.model_validate(contest).model_dump(mode="json"),
                        "candidates": [CandidateSummary.model_validate(c).model_dump(mode="json") for c in candidates],
                    }
                )
            payload = {**ElectionSummary.model_validate(election).model_dump(mode="json"), "contests": contests}
            typer.echo(json.dumps(payload, indent=2))
            return
        typer.echo(f"{election.title} [{election.status}]")
        typer.echo(f"  id:     {election.id}")
        typer.echo(f"  window: {election.opens_at.isoformat()} -> {election.closes_at.isoformat()}")
        for contest in await lifecycle_service.list_contests(session, election_id):
            marker = " (default)" if contest.is_default else ""
            typer.echo(f"  contest {contest.id}: {contest.title}{marker}, max {contest.max_selections}")
            for candidate in await lifecycle_service.list_candidates(session, contest.id):
                typer.echo(f"    - {candidate.id}: {candidate.name}")


@election_app.command("tally")
def tally(
    election_id: Annotated[str, typer.Argument(help="Election UUID")],
    contest_id: Annotated[
        str | None,
        typer.Option("--contest-id", help="Tally a single contest instead of the whole election"),
    ] = None,
) -> None:
    """Print results of a closed election."""
    asyncio.run(
        _tally_impl(
            parse_uuid(election_id, "election_id"),
            parse_uuid(contest_id, "--contest-id") if contest_id else None,
        )
    )


def _echo_tally(result: TallyResult) -> None:
    heading = result.election_title
    if result.contest_title is not None:
        heading = f"{heading} / {result.contest_title}"
    typer.echo(heading)
    if not result.results:
        typer.echo("  no candidates")
    for position, entry in enumerate(result.results, start=1):
        typer.echo(f"  {position}. {entry.name}: {entry.total}")


async def _tally_impl(election_id: uuid.UUID, contest_id: uuid.UUID | None) -> None:
    """Async implementation of the tally command."""
    from ballot_core.core.errors import BadRequestError
    from ballot_core.services import tally_service

    async with cli_session() as session:
        if contest_id is None:
            result = await tally_service.tally_election(session, election_id)
        else:
            result = await tally_service.tally_contest(session, contest_id)
            if result.election_id != election_id:
                raise BadRequestError("contest does not belong to this election")
        _echo_tally(result)
