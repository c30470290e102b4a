"""Typer CLI root application."""

import typer

from ballot_core.core.config import get_settings
from ballot_core.core.logging import setup_logging

app = typer.Typer(name="ballot-core", help="Election, voter roll and ballot administration CLI")


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all CLI commands."""
    settings = get_settings()
    setup_logging(settings.log_level, log_dir=settings.log_dir)


def _register_subcommands() -> None:
    """Register all CLI subcommand groups."""
    from ballot_core.cli.contest_cmd import contest_app
    from ballot_core.cli.db_cmd import db_app
    from ballot_core.cli.election_cmd import election_app
    from ballot_core.cli.roll_cmd import roll_app

    app.add_typer(db_app, name="db", help="Database migration commands")
    app.add_typer(election_app, name="election", help="Election lifecycle and results commands")
    app.add_typer(contest_app, name="contest", help="Contest and candidate commands")
    app.add_typer(roll_app, name="roll", help="Voter roll commands")


_register_subcommands()
