from __future__ import annotations

import pytest
from typer.testing import CliRunner

from sqlcmd_pg import main
from sqlcmd_pg.connection import Connection
from sqlcmd_pg.domain.models import ConnectionOptions
from tests.fakes import FakeAsyncpgConnection, FakePool, make_pool_manager

OPTIONS = ConnectionOptions(database="inventory")
PERSONS = [{"name": "Brown", "age": 32}, {"name": "Smith", "age": 47}]

runner = CliRunner()


@pytest.fixture
def fake_database(monkeypatch):
    """Route every CLI connection to a fake pool; returns the fake connection."""
    asyncpg_connection = FakeAsyncpgConnection(rows=PERSONS)
    manager, _ = make_pool_manager(FakePool(asyncpg_connection))
    monkeypatch.setattr(main, "Connection", lambda: Connection(OPTIONS, pool_manager=manager))
    monkeypatch.setattr(main, "configure_logging", lambda **kwargs: None)
    return asyncpg_connection


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("32", 32), ("Brown", "Brown"), ("null", None), ('{"a": 1}', {"a": 1}), ("[1, 2]", [1, 2])],
)
def test_parse_arg(raw, expected):
    assert main._parse_arg(raw) == expected


def test_info_shows_effective_configuration():
    result = runner.invoke(main.app, ["info"])
    assert result.exit_code == 0
    assert "DB=" in result.stdout
    assert "high_water_mark=" in result.stdout


def test_query_prints_rows(fake_database):
    result = runner.invoke(main.app, ["query", "SELECT name, age FROM person WHERE age > $1", "-a", "30"])

    assert result.exit_code == 0
    assert "Brown" in result.stdout
    assert "Smith" in result.stdout
    assert fake_database.events[0] == ("fetch_all", "SELECT name, age FROM person WHERE age > $1", (30,))


def test_stream_prints_total(fake_database):
    result = runner.invoke(main.app, ["stream", "SELECT name, age FROM person", "-w", "1"])

    assert result.exit_code == 0
    assert "2 rows streamed" in result.stdout


def test_db_exists_exits_with_2_when_missing(fake_database):
    fake_database.responder = lambda sql, args: []

    result = runner.invoke(main.app, ["db", "exists"])

    assert result.exit_code == 2
    assert "missing" in result.stdout


def test_db_create_when_missing(fake_database):
    fake_database.responder = lambda sql, args: []

    result = runner.invoke(main.app, ["db", "create"])

    assert result.exit_code == 0
    assert "created" in result.stdout
    assert fake_database.events[-1][1] == 'CREATE DATABASE "inventory"'


def test_db_drop_when_missing_is_a_no_op(fake_database):
    fake_database.responder = lambda sql, args: []

    result = runner.invoke(main.app, ["db", "drop"])

    assert result.exit_code == 0
    assert "not dropped" in result.stdout


def test_query_error_exits_with_1(fake_database):
    fake_database.failures["fetch_all"] = OSError("connection reset")

    result = runner.invoke(main.app, ["query", "SELECT 1"])

    assert result.exit_code == 1
