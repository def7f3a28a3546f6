"""
Domain models for sqlcmd-pg.

Defines the connection options consumed when establishing a lease, the
field descriptors the server produces once per query, stream options, and
the bound statement produced by the parameter binder.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Optional, Tuple
from urllib.parse import quote

from pydantic import BaseModel, Field

from sqlcmd_pg.config import Settings, get_settings

ADMIN_DATABASE = "postgres"
DEFAULT_HIGH_WATER_MARK = 16384


class ConnectionOptions(BaseModel):
    """
    Options used to open pooled connections.

    Opaque to the streaming core; only `database` is ever substituted (for the
    administrative connection used by the database lifecycle helper).
    """

    host: str = Field("localhost", description="Server host name or socket directory.")
    port: int = Field(5432, description="Server port.")
    user: str = Field("postgres", description="Role to connect as.")
    password: Optional[str] = Field(None, description="Role password.")
    database: str = Field("postgres", description="Target database name.")
    min_size: int = Field(1, ge=0, description="Idle connections kept by the pool.")
    max_size: int = Field(10, ge=1, description="Maximum connections in the pool.")
    connect_attempts: int = Field(1, ge=1, description="Pool creation attempts.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides: Any) -> "ConnectionOptions":
        """Build options from environment settings, applying keyword overrides."""
        settings = settings or get_settings()
        values = {
            "host": settings.db_host,
            "port": settings.db_port,
            "user": settings.db_user,
            "password": settings.db_password,
            "database": settings.db_name,
            "min_size": settings.pool_min_size,
            "max_size": settings.pool_max_size,
            "connect_attempts": settings.connect_attempts,
        }
        values.update(overrides)
        return cls(**values)

    @property
    def dsn(self) -> str:
        """Compose a DSN string; pools are keyed on it."""
        auth = quote(self.user, safe="")
        if self.password is not None:
            auth += ":" + quote(self.password, safe="")
        return f"postgresql://{auth}@{self.host}:{self.port}/{quote(self.database, safe='')}"

    def with_database(self, database: str) -> "ConnectionOptions":
        """Copy these options with only the database name replaced."""
        return self.model_copy(update={"database": database})

    def __repr__(self) -> str:
        return (
            f"ConnectionOptions(user={self.user!r}, host={self.host!r}, "
            f"port={self.port}, database={self.database!r})"
        )


class FieldDescriptor(BaseModel):
    """
    Metadata for one result column, as described by the server.
    """

    name: str = Field(..., description="Column name (or alias).")
    type_oid: int = Field(..., description="PostgreSQL type OID.")
    type_name: Optional[str] = Field(None, description="Type name, when known.")
    size: Optional[int] = Field(None, description="Type size in bytes; negative for varlena.")
    format: Literal["text", "binary"] = Field("binary", description="Wire format of values.")

    model_config = {"frozen": True}


class StreamOptions(BaseModel):
    """
    Options for a query stream.
    """

    high_water_mark: int = Field(DEFAULT_HIGH_WATER_MARK, gt=0, description="Rows to buffer.")
    portal: str = Field("", description="Portal name; empty for the unnamed portal.")

    model_config = {"frozen": True}


@dataclass(frozen=True)
class BoundStatement:
    """SQL text with positional `$n` markers and the matching arguments."""

    text: str
    args: Tuple[Any, ...]


__all__ = [
    "ADMIN_DATABASE",
    "DEFAULT_HIGH_WATER_MARK",
    "BoundStatement",
    "ConnectionOptions",
    "FieldDescriptor",
    "StreamOptions",
]
