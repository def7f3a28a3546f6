from __future__ import annotations

from typing import Any, Dict, List, Tuple

import pytest

from sqlcmd_pg.domain.models import ConnectionOptions
from sqlcmd_pg.lifecycle import DatabaseLifecycle
from tests.fakes import FakeAsyncpgConnection, FakePool, make_pool_manager

OPTIONS = ConnectionOptions(host="db.local", database="inventory")


class _Catalog:
    """Answers the pg_database lookup from a set of database names."""

    def __init__(self, *names: str) -> None:
        self.names = set(names)
        self.statements: List[Tuple[str, Tuple[Any, ...]]] = []

    def __call__(self, sql: str, args: Tuple[Any, ...]) -> List[Dict[str, Any]]:
        self.statements.append((sql, args))
        if sql.startswith("SELECT datname"):
            return [{"datname": args[0]}] if args[0] in self.names else []
        return []

    @property
    def ddl(self) -> List[str]:
        return [sql for sql, _ in self.statements if not sql.startswith("SELECT")]


def _lifecycle(catalog: _Catalog):
    manager, _ = make_pool_manager(FakePool(FakeAsyncpgConnection(responder=catalog)))
    return DatabaseLifecycle(OPTIONS, manager), manager


class TestDatabaseLifecycle:
    """CREATE/DROP DATABASE through the administrative database."""

    @pytest.mark.asyncio
    async def test_statements_run_on_admin_database(self):
        catalog = _Catalog()
        lifecycle, manager = _lifecycle(catalog)

        await lifecycle.exists()

        assert manager.factory_calls[0]["dsn"].endswith("@db.local:5432/postgres")

    @pytest.mark.asyncio
    async def test_exists_binds_the_name(self):
        catalog = _Catalog("inventory")
        lifecycle, _ = _lifecycle(catalog)

        assert await lifecycle.exists() is True
        assert catalog.statements == [
            ("SELECT datname FROM pg_catalog.pg_database WHERE datname = $1", ("inventory",)),
        ]

    @pytest.mark.asyncio
    async def test_exists_false_when_missing(self):
        lifecycle, _ = _lifecycle(_Catalog("other"))
        assert await lifecycle.exists() is False

    @pytest.mark.asyncio
    async def test_create_and_drop_quote_the_name(self):
        catalog = _Catalog()
        lifecycle, _ = _lifecycle(catalog)

        await lifecycle.create()
        await lifecycle.drop()

        assert catalog.ddl == ['CREATE DATABASE "inventory"', 'DROP DATABASE "inventory"']

    @pytest.mark.asyncio
    async def test_create_if_not_exists(self):
        missing = _Catalog()
        lifecycle, _ = _lifecycle(missing)
        assert await lifecycle.create_if_not_exists() is True
        assert missing.ddl == ['CREATE DATABASE "inventory"']

        present = _Catalog("inventory")
        lifecycle, _ = _lifecycle(present)
        assert await lifecycle.create_if_not_exists() is False
        assert present.ddl == []

    @pytest.mark.asyncio
    async def test_drop_if_exists(self):
        present = _Catalog("inventory")
        lifecycle, _ = _lifecycle(present)
        assert await lifecycle.drop_if_exists() is True
        assert present.ddl == ['DROP DATABASE "inventory"']

        missing = _Catalog()
        lifecycle, manager = _lifecycle(missing)
        assert await lifecycle.drop_if_exists() is False
        assert missing.ddl == []
        assert manager.outstanding == 0
