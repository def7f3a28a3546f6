"""
Infrastructure package for sqlcmd-pg.

Centralizes database connectivity concerns: asyncpg pools and leases, and
the protocol driver that query streams talk to. Keep this layer focused on
I/O and resource management, decoupled from the stream state machine.
"""

from sqlcmd_pg.infrastructure.driver import (
    AsyncpgDriver,
    StreamHandlers,
    WireDriver,
    prepare_value,
)
from sqlcmd_pg.infrastructure.pool import Lease, PoolManager, get_pool_manager

__all__ = [
    "AsyncpgDriver",
    "Lease",
    "PoolManager",
    "StreamHandlers",
    "WireDriver",
    "get_pool_manager",
    "prepare_value",
]
