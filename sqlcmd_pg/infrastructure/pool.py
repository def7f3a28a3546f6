"""
Connection pool management for sqlcmd-pg.

Keeps one asyncpg pool per distinct DSN, created lazily on first use, and
hands out `Lease` objects: exclusive use of one pooled connection that must be
released exactly once. The manager counts acquisitions and releases so
callers and tests can check that every lease came back.

Pool creation may be retried with tenacity when `connect_attempts > 1`. The
default of a single attempt surfaces connection errors to the caller as-is.
"""

from __future__ import annotations

import asyncio
import atexit
import threading
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

import asyncpg
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from sqlcmd_pg.domain.models import ConnectionOptions
from sqlcmd_pg.exceptions import ConnectionUnavailableError
from sqlcmd_pg.utils.logging import get_logger

log = get_logger(__name__)

PoolFactory = Callable[..., Awaitable[Any]]

_TRANSIENT_ERRORS = (OSError, asyncpg.CannotConnectNowError, asyncpg.TooManyConnectionsError)


class Lease:
    """
    Ownership token for one pooled connection.

    `release` returns the connection to its pool. Only the first call does
    anything; later calls are logged and ignored.
    """

    def __init__(self, manager: "PoolManager", pool: Any, connection: Any) -> None:
        self._manager = manager
        self._pool = pool
        self.connection = connection
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    async def release(self, error: Optional[BaseException] = None) -> None:
        """
        Return the connection to the pool.

        Parameters
        ----------
        error : BaseException, optional
            The error that ended the work done on this connection, if any.
            Only used for logging; the connection is expected to be idle.
        """
        if self._released:
            log.debug("Lease already released", extra={"lease_id": id(self)})
            return
        self._released = True
        try:
            await self._pool.release(self.connection)
        finally:
            self._manager._record_release()
            if error is not None:
                log.debug(
                    "Released connection after error: %r",
                    error,
                    extra={"lease_id": id(self)},
                )


class PoolManager:
    """
    Lazily creates and owns asyncpg pools, one per DSN.

    Parameters
    ----------
    pool_factory : callable, optional
        Coroutine function with the `asyncpg.create_pool` signature. Tests
        inject fakes here.
    """

    def __init__(self, pool_factory: Optional[PoolFactory] = None) -> None:
        self._pool_factory: PoolFactory = pool_factory or asyncpg.create_pool
        self._pools: Dict[str, Any] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._lock: Optional[asyncio.Lock] = None
        self.acquired = 0
        self.released = 0

    @property
    def outstanding(self) -> int:
        """Leases handed out and not yet released."""
        return self.acquired - self.released

    def _record_release(self) -> None:
        self.released += 1

    async def _create_pool(self, options: ConnectionOptions) -> Any:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(options.connect_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS),
            reraise=True,
        ):
            with attempt:
                log.info(
                    "Creating connection pool",
                    extra={
                        "pool_host": options.host,
                        "pool_database": options.database,
                        "attempt": attempt.retry_state.attempt_number,
                    },
                )
                return await self._pool_factory(
                    dsn=options.dsn,
                    min_size=options.min_size,
                    max_size=options.max_size,
                )

    def _bind_loop(self) -> asyncio.Lock:
        """
        Pools and the lock belong to the event loop they were created on.

        Called from another loop (e.g. a second `asyncio.run` without
        `close_all`), the pools of the previous loop are forgotten and new
        ones are created on the running loop.
        """
        loop = asyncio.get_running_loop()
        if self._loop is not loop:
            if self._pools:
                log.warning(
                    "Discarding %d pool(s) bound to a previous event loop",
                    len(self._pools),
                )
                self._pools.clear()
            self._loop = loop
            self._lock = asyncio.Lock()
        return self._lock

    async def get_pool(self, options: ConnectionOptions) -> Any:
        """
        Get or create the pool for `options` on the running event loop.
        """
        async with self._bind_loop():
            pool = self._pools.get(options.dsn)
            if pool is None:
                pool = await self._create_pool(options)
                self._pools[options.dsn] = pool
            return pool

    async def acquire(self, options: ConnectionOptions) -> Lease:
        """
        Acquire a lease on a pooled connection.

        Raises
        ------
        ConnectionUnavailableError
            If the pool cannot be created or cannot hand out a connection,
            whatever the underlying error (invalid pool sizes, refused
            connections, authentication). Nothing is acquired in that case,
            so nothing must be released. Cancellation propagates unchanged.
        """
        try:
            pool = await self.get_pool(options)
            connection = await pool.acquire()
        except Exception as exc:  # noqa: BLE001 - any pool failure means no connection
            log.error(
                "Connection unavailable: %r",
                exc,
                extra={"pool_host": options.host, "pool_database": options.database},
            )
            raise ConnectionUnavailableError(
                f"Could not acquire a connection for {options!r}: {exc}"
            ) from exc
        self.acquired += 1
        return Lease(self, pool, connection)

    @asynccontextmanager
    async def connection(self, options: ConnectionOptions) -> AsyncIterator[Any]:
        """
        Context manager for obtaining a raw connection from the pool.

        Example
        -------
            manager = PoolManager()
            async with manager.connection(options) as conn:
                await conn.fetch("SELECT 1")
        """
        lease = await self.acquire(options)
        try:
            yield lease.connection
        finally:
            await lease.release()

    async def close_all(self) -> None:
        """
        Close all managed pools, waiting for in-use connections to be released.
        """
        pools = list(self._pools.values())
        self._pools.clear()
        for pool in pools:
            await pool.close()

    def terminate_all(self) -> None:
        """
        Terminate all managed pools immediately.

        Registered with atexit for the default manager, where no event loop is
        left to await `close_all`. Best effort: a pool whose loop is already
        closed cannot be terminated and is only logged.
        """
        pools = list(self._pools.values())
        self._pools.clear()
        for pool in pools:
            try:
                pool.terminate()
            except Exception as exc:  # noqa: BLE001 - exit-time cleanup
                log.warning("Could not terminate pool: %r", exc)


_default_manager: Optional[PoolManager] = None
_default_lock = threading.Lock()


def get_pool_manager() -> PoolManager:
    """
    Get the process-wide default PoolManager.
    """
    global _default_manager
    with _default_lock:
        if _default_manager is None:
            _default_manager = PoolManager()
            atexit.register(_default_manager.terminate_all)
        return _default_manager


__all__ = [
    "Lease",
    "PoolManager",
    "get_pool_manager",
]
