"""
Domain package for sqlcmd-pg.

Exports the value types shared by the binder, the executor, and query
streams. Keep this package focused on data definitions and validation.
"""

from sqlcmd_pg.domain.models import (
    ADMIN_DATABASE,
    DEFAULT_HIGH_WATER_MARK,
    BoundStatement,
    ConnectionOptions,
    FieldDescriptor,
    StreamOptions,
)

__all__ = [
    "ADMIN_DATABASE",
    "DEFAULT_HIGH_WATER_MARK",
    "BoundStatement",
    "ConnectionOptions",
    "FieldDescriptor",
    "StreamOptions",
]
