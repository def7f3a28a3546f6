from __future__ import annotations

import logging

import asyncpg
import pytest

from sqlcmd_pg.domain.models import ConnectionOptions
from sqlcmd_pg.exceptions import ConnectionUnavailableError, QueryError
from sqlcmd_pg.executor import PooledExecutor
from tests.fakes import FakeAsyncpgConnection, FakePool, make_pool_manager

OPTIONS = ConnectionOptions(database="app")
PERSONS = [{"name": "Brown", "age": 32}, {"name": "Smith", "age": 47}]


class TestPooledExecutor:
    """One-shot queries on leased connections."""

    @pytest.mark.asyncio
    async def test_returns_rows_as_dicts_and_releases(self):
        connection = FakeAsyncpgConnection(rows=PERSONS)
        manager, pool = make_pool_manager(FakePool(connection))
        executor = PooledExecutor(OPTIONS, manager)

        rows = await executor.execute("SELECT name, age FROM person WHERE age > $1", [30])

        assert rows == PERSONS
        assert connection.events == [("fetch_all", "SELECT name, age FROM person WHERE age > $1", (30,))]
        assert manager.outstanding == 0
        assert pool.released == [connection]

    @pytest.mark.asyncio
    async def test_arguments_are_prepared(self):
        connection = FakeAsyncpgConnection()
        manager, _ = make_pool_manager(FakePool(connection))

        await PooledExecutor(OPTIONS, manager).execute("SELECT $1, $2", [(1, 2), {"a": 1}])

        assert connection.events[0][2] == ([1, 2], '{"a": 1}')

    @pytest.mark.asyncio
    async def test_query_error_is_raised_after_release(self):
        failure = asyncpg.InterfaceError("connection is closed")
        connection = FakeAsyncpgConnection(failures={"fetch_all": failure})
        manager, pool = make_pool_manager(FakePool(connection))
        executor = PooledExecutor(OPTIONS, manager)

        with pytest.raises(QueryError) as excinfo:
            await executor.execute("SELEC 1")

        assert excinfo.value.__cause__ is failure
        assert manager.outstanding == 0
        assert pool.released == [connection]

    @pytest.mark.asyncio
    async def test_unavailable_connection_sends_nothing(self):
        connection = FakeAsyncpgConnection()
        manager, _ = make_pool_manager(FakePool(connection, acquire_error=OSError("refused")))

        with pytest.raises(ConnectionUnavailableError):
            await PooledExecutor(OPTIONS, manager).execute("SELECT 1")

        assert connection.events == []
        assert manager.outstanding == 0

    @pytest.mark.asyncio
    async def test_logs_through_injected_logger(self, caplog):
        logger = logging.getLogger("tests.executor")
        manager, _ = make_pool_manager(FakePool(FakeAsyncpgConnection(rows=PERSONS)))

        with caplog.at_level(logging.DEBUG, logger="tests.executor"):
            await PooledExecutor(OPTIONS, manager, logger=logger).execute("SELECT 1", [7])

        messages = [record.getMessage() for record in caplog.records if record.name == "tests.executor"]
        assert messages[0] == 'Executing SQL "SELECT 1" with variables: [7]'
        assert messages[-1] == "Query result: 2 rows"
