"""
Backpressure-aware query streams.

A `QueryStream` exposes the rows of one query as an incrementally pulled
sequence while driving the extended-query protocol over a single pooled
connection:

    parse -> bind -> describe -> (execute n)* -> sync

The server-side portal is only advanced when the consumer asks for rows:
every pull issues one `execute` for at most `size` rows (the high-water mark
by default), at most one execute is in flight, and no execute is issued while
the buffer already holds a high-water mark of rows.

Consuming a stream:

    stream = connection.query_stream("SELECT * FROM person", [])
    async for row in stream:
        print(row["name"])

or, with listeners (flowing mode):

    stream.on_data(print).on_error(report).on_end(done)
    await stream.finished()

A flowing stream applies backpressure with `pause()` and `resume()`; while
paused no execute is issued.

Example with an explicit driver (what `Connection.query_stream` does once
the pool grants a lease):

    stream = QueryStream("SELECT * FROM users", [])
    stream.submit(AsyncpgDriver(lease.connection), release=on_release)
"""

from __future__ import annotations

import asyncio
import enum
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple

from sqlcmd_pg.domain.models import FieldDescriptor, StreamOptions
from sqlcmd_pg.exceptions import RowDecodeError, StreamError
from sqlcmd_pg.infrastructure.driver import WireDriver, prepare_value
from sqlcmd_pg.utils.logging import get_logger

log = get_logger(__name__)

Row = Dict[str, Any]
RowDecoder = Callable[[Sequence[FieldDescriptor], Sequence[Any]], Row]
ReleaseCallback = Callable[[Optional[BaseException]], None]


class StreamState(str, enum.Enum):
    UNBOUND = "unbound"
    PARSING = "parsing"
    DESCRIBED = "described"
    EXECUTING = "executing"
    SUSPENDED = "suspended"
    COMPLETING = "completing"
    CLOSING = "closing"
    FAILED = "failed"
    DONE = "done"


def decode_row(fields: Sequence[FieldDescriptor], raw: Sequence[Any]) -> Row:
    """
    Pair raw column values with their field names.

    Values arrive already converted by the driver's type codecs.
    """
    if len(raw) != len(fields):
        raise ValueError(f"row has {len(raw)} values for {len(fields)} fields")
    return {field.name: value for field, value in zip(fields, raw)}


class QueryStream:
    """
    Stream rows from one query, fetching them in demand-sized batches.

    Parameters
    ----------
    text : str
        SQL with positional `$n` markers.
    values : sequence
        Positional arguments; each is normalized with `prepare_value`.
    options : StreamOptions, optional
        High-water mark (rows, default 16384) and portal name (default unnamed).
    decoder : callable, optional
        Turns (fields, raw values) into a row. Defaults to `decode_row`.
    logger : logging.Logger, optional
        Receives lifecycle events. Defaults to this module's logger.
    """

    def __init__(
        self,
        text: str,
        values: Sequence[Any] = (),
        options: Optional[StreamOptions] = None,
        decoder: Optional[RowDecoder] = None,
        logger: Any = None,
    ) -> None:
        self.text = text
        self.values = [prepare_value(value) for value in values]
        self.options = options or StreamOptions()
        self._decoder = decoder or decode_row
        self._log = logger or log

        self._state = StreamState.UNBOUND
        self._driver: Optional[WireDriver] = None
        self._release: Optional[ReleaseCallback] = None
        self._buffer: Deque[Row] = deque()
        self._fields: Optional[Tuple[FieldDescriptor, ...]] = None
        self._pending_pull: Optional[int] = None
        self._outstanding = False
        self._sync_sent = False
        self._close_requested = False
        self._terminal = False
        self._ended = False
        self._error: Optional[BaseException] = None
        self._row_count = 0
        self._execute_count = 0

        self._flowing = False
        self._paused = False
        self._data_listeners: List[Callable[[Row], Any]] = []
        self._error_listeners: List[Callable[[BaseException], Any]] = []
        self._end_listeners: List[Callable[[], Any]] = []
        self._wakeup = asyncio.Event()
        self._done = asyncio.Event()

    # Introspection -------------------------------------------------------

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def fields(self) -> Optional[Tuple[FieldDescriptor, ...]]:
        """Field descriptors, once the server has described the portal."""
        return self._fields

    @property
    def row_count(self) -> int:
        """Rows received from the server so far."""
        return self._row_count

    @property
    def execute_count(self) -> int:
        """Execute requests issued so far."""
        return self._execute_count

    @property
    def exception(self) -> Optional[BaseException]:
        """The error that failed the stream, if any."""
        return self._error

    @property
    def terminal(self) -> bool:
        return self._terminal

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def __repr__(self) -> str:
        return f"<QueryStream state={self._state.value} rows={self._row_count} text={self.text!r}>"

    # Binding -------------------------------------------------------------

    def submit(self, driver: WireDriver, release: Optional[ReleaseCallback] = None) -> None:
        """
        Attach the stream to a driver on a leased connection.

        `release` is called exactly once, with the stream's error (or None),
        after the server reports the connection ready again.
        """
        if self._driver is not None:
            raise StreamError("stream already submitted")
        self._driver = driver
        self._release = release
        if self._close_requested:
            self._log.debug("Query stream closed before it was bound")
            self._finish()
            return

        driver.register(self)
        self._transition(StreamState.PARSING)
        driver.parse(self.text)
        driver.bind(self.values, self.options.portal)
        driver.describe(self.options.portal)
        driver.flush()

        if self._pending_pull is not None:
            size, self._pending_pull = self._pending_pull, None
            self.pull(size)
        elif self._flowing and not self._paused:
            self.pull()

    def fail(self, exc: BaseException) -> None:
        """
        Fail the stream from outside the protocol, e.g. when no lease could
        be acquired. An unbound stream has nothing to release and ends here.
        """
        if self._terminal:
            return
        if self._driver is not None:
            self.error(exc)
            return
        self._record_error(exc)
        self._finish()

    # Demand --------------------------------------------------------------

    def pull(self, size: Optional[int] = None) -> None:
        """
        Ask for up to `size` more rows (default: the high-water mark).

        Never blocks. Before the stream is bound the request is remembered
        and replayed on binding.
        """
        size = self._size(size)
        if self._terminal or self._error is not None or self._close_requested:
            return
        if self._driver is None:
            self._pending_pull = size
            return
        if self._outstanding or self._sync_sent:
            return
        if len(self._buffer) >= self.options.high_water_mark:
            return
        self._outstanding = True
        self._execute_count += 1
        self._transition(StreamState.EXECUTING)
        self._driver.execute(size, self.options.portal)
        self._driver.flush()

    async def read(self, size: Optional[int] = None) -> List[Row]:
        """
        Return up to `size` rows, waiting for the server if none are buffered.

        An empty list means the stream has ended. If the query failed, the
        error is raised once the rows received before it are drained.
        """
        size = self._size(size)
        if not await self._wait_for_rows(size):
            return []
        rows = [self._buffer.popleft() for _ in range(min(size, len(self._buffer)))]
        self._maybe_end()
        return rows

    def __aiter__(self) -> "QueryStream":
        return self

    async def __anext__(self) -> Row:
        if not await self._wait_for_rows(self.options.high_water_mark):
            raise StopAsyncIteration
        row = self._buffer.popleft()
        self._maybe_end()
        return row

    async def finished(self) -> None:
        """Wait until the stream is terminal and its connection released."""
        await self._done.wait()

    def close(self) -> None:
        """
        Stop early: close the portal and sync, then end as usual.

        Buffered rows are discarded.
        """
        if self._terminal or self._close_requested:
            return
        self._close_requested = True
        self._buffer.clear()
        if self._driver is None:
            return
        self._transition(StreamState.CLOSING)
        if self._sync_sent:
            return
        self._driver.close_portal(self.options.portal)
        self._sync()

    # Listeners -----------------------------------------------------------

    def on_data(self, callback: Callable[[Row], Any]) -> "QueryStream":
        """Register a row listener; switches the stream into flowing mode."""
        self._data_listeners.append(callback)
        if not self._flowing:
            self._flowing = True
            self._dispatch()
            if not self._outstanding and not self._paused:
                self.pull()
        return self

    def pause(self) -> "QueryStream":
        """
        Stop delivering rows to data listeners and stop asking for more.

        An execute already in flight still completes; its rows are buffered
        until `resume`.
        """
        if self._flowing and not self._paused:
            self._paused = True
            self._pending_pull = None
            self._log.debug("Query stream paused", extra={"rows": self._row_count})
        return self

    def resume(self) -> "QueryStream":
        """Deliver buffered rows, then pull the next batch."""
        if not self._flowing or not self._paused:
            return self
        self._paused = False
        self._log.debug("Query stream resumed", extra={"rows": self._row_count})
        self._dispatch()
        if not self._paused and not self._outstanding:
            self.pull()
        return self

    @property
    def paused(self) -> bool:
        return self._paused

    def on_error(self, callback: Callable[[BaseException], Any]) -> "QueryStream":
        self._error_listeners.append(callback)
        return self

    def on_end(self, callback: Callable[[], Any]) -> "QueryStream":
        self._end_listeners.append(callback)
        return self

    # Protocol handlers ---------------------------------------------------

    def row_description(self, fields: Sequence[FieldDescriptor]) -> None:
        if self._terminal or self._fields is not None:
            return
        self._fields = tuple(fields)
        if self._state is StreamState.PARSING:
            self._transition(StreamState.DESCRIBED)

    def data_row(self, raw: Sequence[Any]) -> None:
        if self._terminal or self._error is not None or self._close_requested:
            return
        if self._fields is None:
            self._fail(RowDecodeError("data row received before row description", self._row_count))
            return
        try:
            row = self._decoder(self._fields, raw)
        except Exception as exc:  # noqa: BLE001 - surfaced through the error channel
            error = RowDecodeError(f"Could not decode row {self._row_count}: {exc}", self._row_count)
            error.__cause__ = exc
            self._fail(error)
            return
        self._row_count += 1
        self._buffer.append(row)
        self._dispatch()

    def portal_suspended(self) -> None:
        if self._terminal:
            return
        self._outstanding = False
        if self._error is not None or self._close_requested:
            return
        self._transition(StreamState.SUSPENDED)
        self._wakeup.set()
        if self._flowing and not self._paused:
            self.pull()

    def command_complete(self, tag: str) -> None:
        if self._terminal:
            return
        self._outstanding = False
        if self._error is None and not self._close_requested:
            self._log.debug("Query stream command complete", extra={"tag": tag, "rows": self._row_count})
            self._transition(StreamState.COMPLETING)
        self._sync()

    def ready_for_query(self) -> None:
        if self._terminal:
            return
        self._finish()

    def error(self, exc: BaseException) -> None:
        if self._terminal:
            return
        self._fail(exc)

    # Internals -----------------------------------------------------------

    def _size(self, size: Optional[int]) -> int:
        size = self.options.high_water_mark if size is None else size
        if size < 1:
            raise ValueError(f"size must be positive, got {size}")
        return size

    def _transition(self, state: StreamState) -> None:
        if state is self._state:
            return
        self._log.debug(
            "Query stream %s -> %s",
            self._state.value,
            state.value,
            extra={"portal": self.options.portal, "rows": self._row_count},
        )
        self._state = state

    async def _wait_for_rows(self, pull_size: int) -> bool:
        if self._flowing:
            raise StreamError("cannot read from a stream in flowing mode")
        while True:
            if self._buffer:
                return True
            if self._error is not None:
                raise self._error
            if self._terminal:
                return False
            self._wakeup.clear()
            self.pull(pull_size)
            if self._buffer or self._error is not None or self._terminal:
                continue
            await self._wakeup.wait()

    def _dispatch(self) -> None:
        if self._flowing:
            while self._buffer and self._error is None and not self._paused:
                row = self._buffer.popleft()
                for callback in list(self._data_listeners):
                    callback(row)
        self._maybe_end()
        self._wakeup.set()

    def _maybe_end(self) -> None:
        if not self._terminal or self._ended or self._error is not None or self._buffer:
            return
        self._ended = True
        self._log.debug("Query stream ended", extra={"rows": self._row_count})
        for callback in list(self._end_listeners):
            callback()

    def _record_error(self, exc: BaseException) -> bool:
        if self._error is not None:
            self._log.debug("Ignoring error after the first: %r", exc)
            return False
        self._error = exc
        self._transition(StreamState.FAILED)
        self._log.error("Query stream error: %r", exc, extra={"rows": self._row_count})
        for callback in list(self._error_listeners):
            callback(exc)
        self._wakeup.set()
        return True

    def _fail(self, exc: BaseException) -> None:
        if self._record_error(exc):
            self._sync()

    def _sync(self) -> None:
        if self._sync_sent or self._driver is None:
            return
        self._sync_sent = True
        self._driver.sync()
        self._driver.flush()

    def _finish(self) -> None:
        self._terminal = True
        if self._error is None:
            self._transition(StreamState.DONE)
        release, self._release = self._release, None
        self._dispatch()
        if release is not None:
            release(self._error)
        self._done.set()


__all__ = [
    "QueryStream",
    "Row",
    "RowDecoder",
    "StreamState",
    "decode_row",
]
