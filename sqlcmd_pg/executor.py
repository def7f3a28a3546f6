"""
Pooled one-shot query execution.

Acquire a connection, run one statement, collect every row into memory,
release the connection, then return. Used for ordinary queries and for the
DDL issued by the database lifecycle helper.

WARNING: the whole result set is loaded into memory. Use a `QueryStream` for
large results.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

import asyncpg

from sqlcmd_pg.domain.models import ConnectionOptions
from sqlcmd_pg.exceptions import QueryError
from sqlcmd_pg.infrastructure.driver import prepare_value
from sqlcmd_pg.infrastructure.pool import PoolManager, get_pool_manager
from sqlcmd_pg.stream import Row
from sqlcmd_pg.utils.logging import get_logger

log = get_logger(__name__)

_QUERY_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class PooledExecutor:
    """
    Run statements on connections leased from a `PoolManager`.

    Parameters
    ----------
    options : ConnectionOptions
        Where to connect.
    pool_manager : PoolManager, optional
        Defaults to the process-wide manager.
    logger : logging.Logger, optional
        Receives submission and completion events.
    """

    def __init__(
        self,
        options: ConnectionOptions,
        pool_manager: Optional[PoolManager] = None,
        logger: Any = None,
    ) -> None:
        self.options = options
        self.pool_manager = pool_manager or get_pool_manager()
        self._log = logger or log

    async def execute(self, sql: str, args: Sequence[Any] = ()) -> List[Row]:
        """
        Run `sql` with positional `args` and return all rows as dicts.

        Raises
        ------
        ConnectionUnavailableError
            If no connection could be acquired; the SQL is never sent.
        QueryError
            If the server rejected the statement. The connection has already
            been released when this is raised.
        """
        values = [prepare_value(value) for value in args]
        self._log.info('Executing SQL "%s" with variables: %r', sql, values)
        lease = await self.pool_manager.acquire(self.options)
        error: Optional[BaseException] = None
        try:
            records = await lease.connection.fetch(sql, *values)
            rows = [dict(record.items()) for record in records]
        except _QUERY_ERRORS as exc:
            error = exc
        finally:
            await lease.release(error)

        if error is not None:
            self._log.error("Query error: %r", error, extra={"sql": sql})
            raise QueryError(str(error)) from error

        self._log.debug("Query result: %d rows", len(rows), extra={"rows": len(rows)})
        return rows


__all__ = ["PooledExecutor"]
