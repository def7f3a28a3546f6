"""
Utilities package for sqlcmd-pg.

Exports shared helpers for logging and other cross-cutting concerns.
Keep this package lightweight and free of protocol-specific logic.
"""

from sqlcmd_pg.utils.logging import configure_logging, get_logger

__all__ = [
    "configure_logging",
    "get_logger",
]
