"""
sqlcmd-pg - PostgreSQL connection handling for SQL command builders.

This package runs builder commands and plain SQL against pooled PostgreSQL
connections (asyncpg), including:

- Named parameter binding (`$name` -> `$1`)
- Pooled one-shot queries with fully buffered results
- Backpressure-aware query streams over the extended-query protocol
- CREATE/DROP DATABASE helpers with existence checks
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from sqlcmd_pg.binder import bind_parameters
from sqlcmd_pg.command import Command, TextCommand
from sqlcmd_pg.config import Settings, get_settings
from sqlcmd_pg.connection import Connection
from sqlcmd_pg.domain.models import (
    BoundStatement,
    ConnectionOptions,
    FieldDescriptor,
    StreamOptions,
)
from sqlcmd_pg.exceptions import (
    BindingError,
    ConnectionUnavailableError,
    MissingParameterError,
    QueryError,
    RowDecodeError,
    SqlCmdError,
    StreamError,
)
from sqlcmd_pg.executor import PooledExecutor
from sqlcmd_pg.infrastructure.pool import PoolManager, get_pool_manager
from sqlcmd_pg.lifecycle import DatabaseLifecycle
from sqlcmd_pg.stream import QueryStream, StreamState
from sqlcmd_pg.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    "ConnectionOptions",
    # Connections and execution
    "Connection",
    "PooledExecutor",
    "PoolManager",
    "get_pool_manager",
    "DatabaseLifecycle",
    # Commands and binding
    "Command",
    "TextCommand",
    "BoundStatement",
    "bind_parameters",
    # Streaming
    "QueryStream",
    "StreamOptions",
    "StreamState",
    "FieldDescriptor",
    # Errors
    "SqlCmdError",
    "BindingError",
    "MissingParameterError",
    "ConnectionUnavailableError",
    "QueryError",
    "StreamError",
    "RowDecodeError",
    # Logging
    "configure_logging",
    "get_logger",
]
