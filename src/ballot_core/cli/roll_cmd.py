"""CLI commands for contest voter rolls."""

import asyncio
import uuid
from typing import Annotated

import typer

from ballot_core.cli.runtime import cli_session, parse_uuid

roll_app = typer.Typer()


@roll_app.command("add")
def add(
    contest_id: Annotated[str, typer.Option("--contest-id", help="Contest UUID")],
    identifier: Annotated[str, typer.Option("--user", help="User UUID or email address")],
) -> None:
    """Put one user on a contest's voter roll."""
    asyncio.run(_add_impl(parse_uuid(contest_id, "--contest-id"), identifier))


async def _add_impl(contest_id: uuid.UUID, identifier: str) -> None:
    """Async implementation of the add command."""
    from ballot_core.core.errors import NotFoundError
    from ballot_core.services import eligibility_service

    async with cli_session() as session:
        user_id = await eligibility_service.resolve_identifier(session, identifier.strip())
        if user_id is None:
            raise NotFoundError(f"no user matches '{identifier}'")
        added = await eligibility_service.add_voter(session, contest_id, user_id)
        if added:
            typer.echo(f"Added {user_id} to the roll of contest {contest_id}")
        else:
            typer.echo(f"{user_id} is already on the roll of contest {contest_id}")


@roll_app.command("import")
def import_roll(
    contest_id: Annotated[str, typer.Option("--contest-id", help="Contest UUID")],
    identifiers: Annotated[
        list[str],
        typer.Option("--identifier", "-i", help="User UUID or email address; repeat for each voter"),
    ],
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run/--commit", help="Only classify the rows, or write the valid ones"),
    ] = True,
) -> None:
    """Import many users into a contest's voter roll."""
    asyncio.run(_import_impl(parse_uuid(contest_id, "--contest-id"), identifiers, dry_run))


async def _import_impl(contest_id: uuid.UUID, identifiers: list[str], dry_run: bool) -> None:
    """Async implementation of the import command."""
    from ballot_core.core.config import get_settings
    from ballot_core.services import eligibility_service

    settings = get_settings()
    rows = list(enumerate(identifiers, start=1))
    async with cli_session() as session:
        result = await eligibility_service.import_roll(
            session,
            contest_id,
            rows,
            dry_run=dry_run,
            max_rows=settings.roll_import_max_rows,
        )

    mode = "Dry run" if result.dry_run else "Import"
    typer.echo(
        f"{mode}: {result.total_rows} rows, {result.valid_rows} valid, {result.inserted_rows} inserted, "
        f"{result.not_found_rows} not found, {result.duplicate_rows} duplicate, "
        f"{result.already_in_roll_rows} already in roll"
    )
    for issue in result.issues:
        typer.echo(f"  row {issue.row}: {issue.identifier} ({issue.reason})")
