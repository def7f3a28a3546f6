"""
Pytest configuration for sqlcmd-pg.

Provides fixtures for:
- Settings and DSNs for integration tests (PG* environment variables)
- Database availability checks
- Seeding the `person` example table
"""

from __future__ import annotations

import os
from typing import Generator

import psycopg
import pytest

from sqlcmd_pg.config import Settings
from sqlcmd_pg.domain.models import ADMIN_DATABASE, ConnectionOptions
from tests.data.persons import CREATE_PERSON_TABLE, person_rows

TEST_DATABASE = "sqlcmd_pg_test"


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Connection values come from PGHOST, PGPORT, PGUSER and PGPASSWORD; the
    database defaults to a dedicated test database.
    """
    return Settings(
        db_name=os.getenv("PGDATABASE", TEST_DATABASE),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_options(test_settings: Settings) -> ConnectionOptions:
    return ConnectionOptions.from_settings(test_settings, max_size=4)


@pytest.fixture(scope="session")
def test_dsn(test_options: ConnectionOptions) -> str:
    """
    Database connection string for tests.
    """
    return test_options.dsn


@pytest.fixture(scope="session")
def admin_dsn(test_options: ConnectionOptions) -> str:
    return test_options.with_database(ADMIN_DATABASE).dsn


@pytest.fixture(scope="session")
def db_connection_available(admin_dsn: str) -> bool:
    """
    Check if the server is reachable.

    Used to conditionally skip integration tests when it is not.
    """
    try:
        with psycopg.connect(admin_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def test_database(admin_dsn: str, test_options: ConnectionOptions, db_connection_available: bool) -> str:
    """
    Ensure the test database exists. Skips if the server is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    with psycopg.connect(admin_dsn, autocommit=True) as conn:
        with conn.cursor() as cur:
            cur.execute("SELECT 1 FROM pg_database WHERE datname = %s;", (test_options.database,))
            if cur.fetchone() is None:
                cur.execute(f'CREATE DATABASE "{test_options.database}";')
    return test_options.database


@pytest.fixture(scope="session")
def db_connection(test_dsn: str, test_database: str) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped psycopg connection to the test database.
    """
    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def seeded_persons(db_connection: psycopg.Connection) -> int:
    """
    Recreate and seed the `person` table. Returns the number of rows seeded.
    """
    rows = person_rows()
    with db_connection.cursor() as cur:
        cur.execute("DROP TABLE IF EXISTS person;")
        cur.execute(CREATE_PERSON_TABLE)
        cur.executemany("INSERT INTO person (name, age) VALUES (%s, %s);", rows)
    db_connection.commit()
    return len(rows)
