"""Integration tests for the ballot-core CLI against a SQLite file database."""

import asyncio
import json
import re
import uuid
from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from typer.testing import CliRunner

from ballot_core.cli.app import app
from ballot_core.core.logging import setup_logging
from ballot_core.models.base import Base
from ballot_core.models.user import User
from ballot_core.services import vote_service

pytestmark = pytest.mark.integration

runner = CliRunner()

UUID_RE = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"


def _enable_foreign_keys(dbapi_connection, _connection_record) -> None:  # type: ignore[no-untyped-def]
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def _run_with_session(database_url: str, work):  # noqa: ANN202
    engine = create_async_engine(database_url)
    event.listen(engine.sync_engine, "connect", _enable_foreign_keys)
    try:
        async with async_sessionmaker(engine, expire_on_commit=False)() as session:
            return await work(session)
    finally:
        await engine.dispose()


async def _create_schema(database_url: str) -> None:
    engine = create_async_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


@pytest.fixture
def database_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """File database with the full schema, exposed to the CLI through DATABASE_URL."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    asyncio.run(_create_schema(url))
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    return url


@pytest.fixture(autouse=True)
def _restore_logging():
    """Point loguru back at the real stderr once CliRunner has swapped it out."""
    yield
    setup_logging("WARNING")


def _add_user(database_url: str, email: str) -> uuid.UUID:
    user_id = uuid.uuid4()

    async def _work(session):
        session.add(User(id=user_id, email=email, full_name="CLI Voter", role="voter"))
        await session.commit()

    asyncio.run(_run_with_session(database_url, _work))
    return user_id


def _invoke(*args: str):  # noqa: ANN202
    return runner.invoke(app, list(args))


def _created_id(output: str, noun: str) -> str:
    match = re.search(rf"Created {noun} ({UUID_RE})", output)
    assert match, output
    return match.group(1)


class TestElectionFlow:
    """Create, populate, publish, vote, close and tally from the command line."""

    def test_full_lifecycle(self, database_url: str) -> None:
        result = _invoke(
            "election",
            "create",
            "--org",
            str(uuid.uuid4()),
            "--title",
            "Club Chair",
            "--opens-at",
            "2020-01-01T00:00:00",
            "--closes-at",
            "2099-01-01T00:00:00+00:00",
        )
        assert result.exit_code == 0, result.output
        election_id = _created_id(result.output, "election")

        show = _invoke("election", "show", election_id)
        assert show.exit_code == 0, show.output
        contest_id = re.search(rf"contest ({UUID_RE}): Club Chair \(default\)", show.output).group(1)

        ada = _invoke("contest", "candidate-add", "--contest-id", contest_id, "--name", "Ada")
        grace = _invoke("contest", "candidate-add", "--contest-id", contest_id, "--name", "Grace")
        assert ada.exit_code == 0 and grace.exit_code == 0
        ada_id = uuid.UUID(_created_id(ada.output, "candidate"))

        voter = _add_user(database_url, "member@example.org")
        added = _invoke("roll", "add", "--contest-id", contest_id, "--user", "MEMBER@example.org")
        assert added.exit_code == 0, added.output
        assert f"Added {voter}" in added.output

        assert _invoke("election", "publish", election_id).exit_code == 0

        async def _vote(session):
            return await vote_service.cast_vote(
                session,
                contest_id=uuid.UUID(contest_id),
                voter_id=voter,
                idempotency_key="cli-flow",
                selections=[ada_id],
            )

        asyncio.run(_run_with_session(database_url, _vote))

        early = _invoke("election", "tally", election_id)
        assert early.exit_code == 1
        assert "only after the election is closed" in early.output

        closed = _invoke("election", "close", election_id)
        assert closed.exit_code == 0
        assert "is now closed" in closed.output

        tally = _invoke("election", "tally", election_id, "--contest-id", contest_id)
        assert tally.exit_code == 0, tally.output
        assert "1. Ada: 1" in tally.output
        assert "2. Grace: 0" in tally.output

    def test_publish_twice_exits_with_error(self, database_url: str) -> None:
        created = _invoke(
            "election",
            "create",
            "--org",
            str(uuid.uuid4()),
            "--title",
            "Twice",
            "--opens-at",
            "2020-01-01T00:00:00",
            "--closes-at",
            "2099-01-01T00:00:00",
        )
        election_id = _created_id(created.output, "election")

        assert _invoke("election", "publish", election_id).exit_code == 0
        again = _invoke("election", "publish", election_id)
        assert again.exit_code == 1
        assert "only draft elections can be published" in again.output

    def test_inverted_window_is_rejected(self, database_url: str) -> None:
        result = _invoke(
            "election",
            "create",
            "--org",
            str(uuid.uuid4()),
            "--title",
            "Backwards",
            "--opens-at",
            "2030-01-02T00:00:00",
            "--closes-at",
            "2030-01-01T00:00:00",
        )
        assert result.exit_code == 1
        assert "opens_at must be earlier than closes_at" in result.output

    def test_unknown_election(self, database_url: str) -> None:
        result = _invoke("election", "show", str(uuid.uuid4()))
        assert result.exit_code == 1
        assert "election not found" in result.output

    def test_invalid_uuid_is_usage_error(self, database_url: str) -> None:
        result = _invoke("election", "publish", "not-a-uuid")
        assert result.exit_code == 2


class TestRollImport:
    """Tests for `roll import`."""

    def _draft_contest(self) -> str:
        created = _invoke(
            "election",
            "create",
            "--org",
            str(uuid.uuid4()),
            "--title",
            "Roll Test",
            "--opens-at",
            "2020-01-01T00:00:00",
            "--closes-at",
            "2099-01-01T00:00:00",
        )
        election_id = _created_id(created.output, "election")
        show = _invoke("election", "show", election_id)
        return re.search(rf"contest ({UUID_RE})", show.output).group(1)

    def test_dry_run_then_commit(self, database_url: str) -> None:
        contest_id = self._draft_contest()
        first = _add_user(database_url, "one@example.org")
        _add_user(database_url, "two@example.org")
        args = [
            "roll",
            "import",
            "--contest-id",
            contest_id,
            "-i",
            str(first),
            "-i",
            "two@example.org",
            "-i",
            "nobody@example.org",
            "-i",
            "ONE@example.org",
        ]

        dry = _invoke(*args)
        assert dry.exit_code == 0, dry.output
        assert "Dry run: 4 rows, 2 valid, 0 inserted" in dry.output
        assert "row 3: nobody@example.org (user_not_found)" in dry.output
        assert "row 4: ONE@example.org (duplicate_in_payload)" in dry.output

        committed = _invoke(*args, "--commit")
        assert committed.exit_code == 0, committed.output
        assert "Import: 4 rows, 2 valid, 2 inserted" in committed.output

    def test_row_limit_from_settings(self, database_url: str, monkeypatch: pytest.MonkeyPatch) -> None:
        contest_id = self._draft_contest()
        monkeypatch.setenv("ROLL_IMPORT_MAX_ROWS", "1")
        result = _invoke("roll", "import", "--contest-id", contest_id, "-i", "a@example.org", "-i", "b@example.org")
        assert result.exit_code == 1
        assert "at most 1 rows" in result.output

    def test_add_unknown_user(self, database_url: str) -> None:
        contest_id = self._draft_contest()
        result = _invoke("roll", "add", "--contest-id", contest_id, "--user", "ghost@example.org")
        assert result.exit_code == 1
        assert "no user matches" in result.output


class TestDbCommands:
    """Tests for the `db` command group wiring."""

    def test_upgrade_invokes_alembic(self, database_url: str) -> None:
        with patch("alembic.command.upgrade") as upgrade:
            result = _invoke("db", "upgrade")
        assert result.exit_code == 0, result.output
        assert upgrade.call_args.args[1] == "head"

    def test_downgrade_defaults_to_previous_revision(self, database_url: str) -> None:
        with patch("alembic.command.downgrade") as downgrade:
            result = _invoke("db", "downgrade")
        assert result.exit_code == 0, result.output
        assert downgrade.call_args.args[1] == "-1"


class TestListingAndJson:
    """Tests for `election list` and `election show --json`."""

    def _create(self, org: str, title: str) -> str:
        created = _invoke(
            "election",
            "create",
            "--org",
            org,
            "--title",
            title,
            "--opens-at",
            "2020-01-01T00:00:00",
            "--closes-at",
            "2099-01-01T00:00:00",
        )
        assert created.exit_code == 0, created.output
        return _created_id(created.output, "election")

    def test_list_filters_by_org_and_status(self, database_url: str) -> None:
        org = str(uuid.uuid4())
        first = self._create(org, "First")
        second = self._create(org, "Second")
        self._create(str(uuid.uuid4()), "Elsewhere")
        assert _invoke("election", "publish", first).exit_code == 0

        listed = _invoke("election", "list", "--org", org, "--json")
        assert listed.exit_code == 0, listed.output
        payload = json.loads(listed.output)
        assert payload["pagination"]["total"] == 2
        assert {item["id"] for item in payload["items"]} == {first, second}

        drafts = _invoke("election", "list", "--org", org, "--status", "draft")
        assert drafts.exit_code == 0, drafts.output
        assert second in drafts.output
        assert first not in drafts.output
        assert "(1 election(s))" in drafts.output

    def test_show_json(self, database_url: str) -> None:
        election_id = self._create(str(uuid.uuid4()), "Json Vote")

        shown = _invoke("election", "show", election_id, "--json")
        assert shown.exit_code == 0, shown.output
        payload = json.loads(shown.output)
        assert payload["id"] == election_id
        assert payload["status"] == "draft"
        [contest] = payload["contests"]
        assert contest["is_default"] is True
        assert contest["metadata"] == {}
        assert contest["candidates"] == []
