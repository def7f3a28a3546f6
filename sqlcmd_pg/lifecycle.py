"""
Create, drop, and check whole databases.

Every statement runs through a `PooledExecutor` on the administrative
`postgres` database, using the same connection options with only the
database name replaced.

Known limitations:
- The database name is interpolated into CREATE/DROP DATABASE as a quoted
  identifier, because identifiers cannot be bound as parameters. Callers must
  sanitize it; a name containing `"` can inject SQL.
- The *_if_* variants check, then act. They are not atomic with respect to
  concurrent DDL from other sessions.
"""

from __future__ import annotations

from typing import Any, Optional

from sqlcmd_pg.binder import bind_parameters
from sqlcmd_pg.domain.models import ADMIN_DATABASE, ConnectionOptions
from sqlcmd_pg.executor import PooledExecutor
from sqlcmd_pg.infrastructure.pool import PoolManager
from sqlcmd_pg.utils.logging import get_logger

log = get_logger(__name__)

EXISTS_SQL = "SELECT datname FROM pg_catalog.pg_database WHERE datname = $datname"


class DatabaseLifecycle:
    """
    Lifecycle operations for the database named in `options`.
    """

    def __init__(
        self,
        options: ConnectionOptions,
        pool_manager: Optional[PoolManager] = None,
        logger: Any = None,
    ) -> None:
        self.database = options.database
        self._log = logger or log
        self._admin = PooledExecutor(
            options.with_database(ADMIN_DATABASE),
            pool_manager=pool_manager,
            logger=self._log,
        )

    async def exists(self) -> bool:
        """Check pg_database for the target name."""
        statement = bind_parameters(EXISTS_SQL, {"datname": self.database})
        rows = await self._admin.execute(statement.text, statement.args)
        return len(rows) > 0

    async def create(self) -> None:
        """
        Create the database.

        Unsafe: the name goes into the SQL text as-is.
        """
        await self._admin.execute(f'CREATE DATABASE "{self.database}"')

    async def create_if_not_exists(self) -> bool:
        """
        1. If the database does not exist, create it and return True.
        2. If it already exists, do nothing and return False.
        """
        if await self.exists():
            self._log.debug("Database already exists", extra={"database": self.database})
            return False
        await self.create()
        return True

    async def drop(self) -> None:
        """
        Drop the database.

        Vulnerable to injection via the database name!
        """
        await self._admin.execute(f'DROP DATABASE "{self.database}"')

    async def drop_if_exists(self) -> bool:
        """
        1. If the database exists, drop it and return True.
        2. If it does not exist, do nothing and return False.
        """
        if not await self.exists():
            self._log.debug("Database does not exist", extra={"database": self.database})
            return False
        await self.drop()
        return True


__all__ = ["DatabaseLifecycle", "EXISTS_SQL"]
