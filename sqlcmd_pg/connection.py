"""
PostgreSQL connection facade.

`Connection` ties the pieces together for one set of connection options:
buffered queries through the `PooledExecutor`, incremental results through
`QueryStream`, builder commands through the parameter binder, and database
lifecycle operations through `DatabaseLifecycle` on the administrative
database.

Usage:
    async with Connection(database="app") as db:
        await db.create_database_if_not_exists()
        rows = await db.query("SELECT * FROM person WHERE age > $1", [30])
        async for row in db.query_stream("SELECT * FROM person"):
            ...
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Coroutine, List, Optional, Sequence, Set

from sqlcmd_pg.binder import bind_parameters
from sqlcmd_pg.command import Command
from sqlcmd_pg.config import get_settings
from sqlcmd_pg.domain.models import ADMIN_DATABASE, ConnectionOptions, StreamOptions
from sqlcmd_pg.executor import PooledExecutor
from sqlcmd_pg.infrastructure.driver import AsyncpgDriver
from sqlcmd_pg.infrastructure.pool import Lease, PoolManager, get_pool_manager
from sqlcmd_pg.lifecycle import DatabaseLifecycle
from sqlcmd_pg.stream import QueryStream, Row, RowDecoder
from sqlcmd_pg.utils.logging import get_logger

log = get_logger(__name__)


class Connection:
    """
    Run SQL against the database described by `options`.

    Parameters
    ----------
    options : ConnectionOptions, optional
        Defaults to options built from the environment settings.
    pool_manager : PoolManager, optional
        Defaults to the process-wide manager, shared by all connections.
    logger : logging.Logger, optional
        Receives every query and stream event of this connection.
    **overrides
        Option fields to override, e.g. ``Connection(database="app")``.
    """

    def __init__(
        self,
        options: Optional[ConnectionOptions] = None,
        pool_manager: Optional[PoolManager] = None,
        logger: Any = None,
        **overrides: Any,
    ) -> None:
        if options is None:
            options = ConnectionOptions.from_settings(**overrides)
        elif overrides:
            options = options.model_copy(update=overrides)
        self.options = options
        self.pool_manager = pool_manager or get_pool_manager()
        self._log = logger or log
        self._executor = PooledExecutor(self.options, self.pool_manager, self._log)
        self._lifecycle = DatabaseLifecycle(self.options, self.pool_manager, self._log)
        self._tasks: Set[asyncio.Task] = set()
        self._streams: Set[QueryStream] = set()

    def __repr__(self) -> str:
        return f"Connection({self.options!r})"

    async def __aenter__(self) -> "Connection":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Queries -------------------------------------------------------------

    async def query(self, sql: str, args: Sequence[Any] = ()) -> List[Row]:
        """
        Run any PostgreSQL command with positional (`$1`) arguments and
        return all resulting rows.
        """
        return await self._executor.execute(sql, args)

    async def execute_sql(self, sql: str, args: Sequence[Any] = ()) -> List[Row]:
        """Proxies directly to `query`."""
        return await self.query(sql, args)

    async def execute_command(self, command: Command) -> List[Row]:
        """
        Run a builder command, translating its `$name` placeholders into the
        positional markers PostgreSQL expects.

        Raises MissingParameterError before any I/O if a name is unbound.
        """
        statement = bind_parameters(command.to_sql(), command.parameters)
        return await self.query(statement.text, statement.args)

    def query_stream(
        self,
        sql: str,
        args: Sequence[Any] = (),
        options: Optional[StreamOptions] = None,
        decoder: Optional[RowDecoder] = None,
    ) -> QueryStream:
        """
        Return a `QueryStream` for `sql`.

        Must be called from a running event loop. The connection is acquired
        in the background; if that fails, the error is delivered through the
        stream.
        """
        values = list(args)
        self._log.info('Creating query stream with SQL "%s" and variables: %r', sql, values)
        if options is None:
            options = StreamOptions(high_water_mark=get_settings().stream_high_water_mark)
        stream = QueryStream(sql, values, options=options, decoder=decoder, logger=self._log)
        self._streams.add(stream)
        self._spawn(self._bind_stream(stream))
        return stream

    async def _bind_stream(self, stream: QueryStream) -> None:
        try:
            lease = await self.pool_manager.acquire(self.options)
        except Exception as exc:  # noqa: BLE001 - delivered through the stream
            self._streams.discard(stream)
            stream.fail(exc)
            return
        driver = AsyncpgDriver(lease.connection)

        def _release(error: Optional[BaseException]) -> None:
            self._spawn(self._release_stream(stream, driver, lease, error))

        stream.submit(driver, release=_release)

    async def _release_stream(
        self,
        stream: QueryStream,
        driver: AsyncpgDriver,
        lease: Lease,
        error: Optional[BaseException],
    ) -> None:
        try:
            await driver.wait_closed()
        finally:
            self._streams.discard(stream)
            await lease.release(error)
        self._log.debug("Query stream ended; connection released")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_idle(self) -> None:
        """Wait for background stream binding and release tasks to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    @asynccontextmanager
    async def client(self) -> AsyncIterator[Any]:
        """
        Lease a raw asyncpg connection from the pool; it is returned to the
        pool when the block exits.
        """
        async with self.pool_manager.connection(self.options) as connection:
            yield connection

    async def close(self) -> None:
        """
        Close every pool of this connection's pool manager.

        Streams still open are closed early (unread rows are discarded) and
        their connections released before the pools go away.
        """
        streams = list(self._streams)
        for stream in streams:
            stream.close()
        await asyncio.gather(*(stream.finished() for stream in streams))
        await self.wait_idle()
        await self.pool_manager.close_all()

    # Database commands (same options, except the 'postgres' database) -----

    def postgres_connection(self) -> "Connection":
        """
        A Connection to the administrative database, sharing this
        connection's pool manager and logger.
        """
        return Connection(
            self.options.with_database(ADMIN_DATABASE),
            pool_manager=self.pool_manager,
            logger=self._log,
        )

    async def database_exists(self) -> bool:
        return await self._lifecycle.exists()

    async def create_database(self) -> None:
        """
        Create the database used by this connection. The name goes into the
        SQL text raw; see `DatabaseLifecycle`.
        """
        await self._lifecycle.create()

    async def create_database_if_not_exists(self) -> bool:
        return await self._lifecycle.create_if_not_exists()

    async def drop_database(self) -> None:
        """Drop the database used by this connection. Vulnerable to injection via the name!"""
        await self._lifecycle.drop()

    async def drop_database_if_exists(self) -> bool:
        return await self._lifecycle.drop_if_exists()


__all__ = ["Connection"]
