"""
Extended-query protocol driver for query streams.

`WireDriver` is the outbound half of the protocol a `QueryStream` drives:
parse, bind, describe, execute, close, sync, and flush. `StreamHandlers` is
the inbound half: the driver reports server messages by calling the handler
table registered for the lifetime of one bound query.

`AsyncpgDriver` implements the driver on top of a pooled asyncpg connection.
asyncpg owns the socket, the handshake, and the type codecs; the driver maps
each protocol message onto asyncpg's prepared statements and portals:

- parse/bind/describe: start the implicit transaction the portal lives in,
  prepare the statement, bind a cursor portal, and report the attributes;
- execute(n): `Cursor.fetch(n)`; fewer than n rows means the portal is
  exhausted (command complete), otherwise it is suspended;
- close: drop the portal, which is then rolled back at sync;
- sync: end the transaction and report readiness.

Messages are buffered until `flush` and processed strictly in order by one
worker task. After an error every message up to the next sync is discarded,
as the server does.
"""

from __future__ import annotations

import asyncio
import enum
import json
from typing import Any, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from sqlcmd_pg.domain.models import FieldDescriptor
from sqlcmd_pg.exceptions import StreamError
from sqlcmd_pg.utils.logging import get_logger

log = get_logger(__name__)


class StreamHandlers(Protocol):
    """Inbound protocol events, in the order the server sends them."""

    def row_description(self, fields: Sequence[FieldDescriptor]) -> None:
        ...

    def data_row(self, raw: Sequence[Any]) -> None:
        ...

    def portal_suspended(self) -> None:
        ...

    def command_complete(self, tag: str) -> None:
        ...

    def ready_for_query(self) -> None:
        ...

    def error(self, exc: BaseException) -> None:
        ...


@runtime_checkable
class WireDriver(Protocol):
    """Outbound protocol messages. Nothing is sent before `flush`."""

    def register(self, handlers: StreamHandlers) -> None:
        ...

    def parse(self, text: str) -> None:
        ...

    def bind(self, values: Sequence[Any], portal: str) -> None:
        ...

    def describe(self, portal: str) -> None:
        ...

    def execute(self, count: int, portal: str) -> None:
        ...

    def close_portal(self, portal: str) -> None:
        ...

    def sync(self) -> None:
        ...

    def flush(self) -> None:
        ...


def prepare_value(value: Any) -> Any:
    """
    Normalize one query argument before transmission.

    Enums are sent as their value, mappings as JSON text, and tuples or sets
    as lists (PostgreSQL arrays), recursively.
    """
    if isinstance(value, enum.Enum):
        return prepare_value(value.value)
    if isinstance(value, dict):
        return json.dumps(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return [prepare_value(item) for item in value]
    return value


def describe_attributes(attributes: Sequence[Any]) -> Tuple[FieldDescriptor, ...]:
    """Convert asyncpg statement attributes into field descriptors."""
    return tuple(
        FieldDescriptor(
            name=attribute.name,
            type_oid=attribute.type.oid,
            type_name=attribute.type.name,
        )
        for attribute in attributes
    )


class AsyncpgDriver:
    """
    Protocol driver bound to one asyncpg connection for one query.

    The worker task exits after processing `sync`; `wait_closed` waits for
    it, after which the connection is idle and may go back to the pool.
    """

    def __init__(self, connection: Any) -> None:
        self._connection = connection
        self._handlers: Optional[StreamHandlers] = None
        self._outbound: List[Tuple[Any, ...]] = []
        self._queue: "asyncio.Queue[Tuple[Any, ...]]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._text: Optional[str] = None
        self._values: Sequence[Any] = ()
        self._portal = ""
        self._transaction: Any = None
        self._cursor: Any = None
        self._failed = False
        self._portal_closed = False
        self._row_count = 0
        self._message_handlers = {
            "parse": self._on_parse,
            "bind": self._on_bind,
            "describe": self._on_describe,
            "execute": self._on_execute,
            "close": self._on_close,
        }

    # Outbound ------------------------------------------------------------

    def register(self, handlers: StreamHandlers) -> None:
        self._handlers = handlers

    def parse(self, text: str) -> None:
        self._outbound.append(("parse", text))

    def bind(self, values: Sequence[Any], portal: str) -> None:
        self._outbound.append(("bind", list(values), portal))

    def describe(self, portal: str) -> None:
        self._outbound.append(("describe", portal))

    def execute(self, count: int, portal: str) -> None:
        if count < 1:
            raise ValueError(f"execute count must be positive, got {count}")
        self._outbound.append(("execute", count, portal))

    def close_portal(self, portal: str) -> None:
        self._outbound.append(("close", portal))

    def sync(self) -> None:
        self._outbound.append(("sync",))

    def flush(self) -> None:
        if self._handlers is None:
            raise StreamError("no handlers registered with the driver")
        for message in self._outbound:
            self._queue.put_nowait(message)
        self._outbound.clear()
        if self._worker is None:
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def wait_closed(self) -> None:
        """Wait until the worker has processed `sync`."""
        if self._worker is not None:
            await self._worker

    # Worker --------------------------------------------------------------

    async def _run(self) -> None:
        assert self._handlers is not None
        while True:
            message = await self._queue.get()
            kind, args = message[0], message[1:]
            if kind == "sync":
                await self._on_sync()
                return
            if self._failed:
                log.debug("Discarding %s message after error", kind)
                continue
            try:
                handler = self._message_handlers.get(kind)
                if handler is None:
                    raise StreamError(f"unknown protocol message {kind!r}")
                await handler(*args)
            except Exception as exc:  # noqa: BLE001 - forwarded to the handler error channel
                self._failed = True
                self._handlers.error(exc)

    async def _on_parse(self, text: str) -> None:
        self._text = text

    async def _on_bind(self, values: Sequence[Any], portal: str) -> None:
        self._values = values
        self._portal = portal

    async def _on_describe(self, portal: str) -> None:
        self._check_portal(portal)
        self._transaction = self._connection.transaction()
        await self._transaction.start()
        statement = await self._connection.prepare(self._text)
        self._cursor = await statement.cursor(*self._values)
        self._handlers.row_description(describe_attributes(statement.get_attributes()))

    async def _on_execute(self, count: int, portal: str) -> None:
        self._check_portal(portal)
        if self._cursor is None:
            raise StreamError(f"portal {portal!r} is not open")
        records = await self._cursor.fetch(count)
        for record in records:
            self._handlers.data_row(tuple(record))
        self._row_count += len(records)
        if len(records) < count:
            self._cursor = None
            self._handlers.command_complete(f"SELECT {self._row_count}")
        else:
            self._handlers.portal_suspended()

    async def _on_close(self, portal: str) -> None:
        self._check_portal(portal)
        self._cursor = None
        self._portal_closed = True

    async def _on_sync(self) -> None:
        transaction, self._transaction = self._transaction, None
        self._cursor = None
        try:
            if transaction is not None:
                if self._failed or self._portal_closed:
                    await transaction.rollback()
                else:
                    await transaction.commit()
        except Exception as exc:  # noqa: BLE001 - forwarded to the handler error channel
            if self._failed:
                log.warning("Rollback after error failed: %r", exc)
            else:
                self._failed = True
                self._handlers.error(exc)
        finally:
            self._handlers.ready_for_query()

    def _check_portal(self, portal: str) -> None:
        if portal != self._portal:
            raise StreamError(f"portal {portal!r} was never bound (bound: {self._portal!r})")


__all__ = [
    "AsyncpgDriver",
    "StreamHandlers",
    "WireDriver",
    "describe_attributes",
    "prepare_value",
]
