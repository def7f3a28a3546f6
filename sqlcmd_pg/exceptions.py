"""
Exception hierarchy for sqlcmd-pg.

Errors raised by asyncpg are never swallowed: they are re-raised (or
delivered through a stream's error channel) wrapped in one of these classes
with the original exception chained as ``__cause__``.
"""

from __future__ import annotations

import pprint
from typing import Any, Mapping


class SqlCmdError(Exception):
    """Base class for all sqlcmd-pg errors"""


class BindingError(SqlCmdError):
    """Error rewriting a command template into positional SQL"""


class MissingParameterError(BindingError, KeyError):
    """A `$name` placeholder has no matching entry in the parameter map"""

    def __init__(self, name: str, template: str, parameters: Mapping[str, Any]) -> None:
        self.name = name
        self.template = template
        self.parameters = dict(parameters)
        message = (
            f'Cannot execute command with incomplete parameters. "{name}" is missing. '
            f'sql = "{template}" context = {pprint.pformat(self.parameters, compact=True)}'
        )
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError would repr() the message otherwise
        return str(self.args[0])


class ConnectionUnavailableError(SqlCmdError):
    """The pool could not hand out a connection"""


class QueryError(SqlCmdError):
    """Server or protocol error while running a one-shot query"""


class StreamError(SqlCmdError):
    """Error raised by a query stream"""


class RowDecodeError(StreamError):
    """A data row could not be decoded against the field descriptors"""

    def __init__(self, message: str, row_index: int) -> None:
        super().__init__(message)
        self.row_index = row_index


__all__ = [
    "SqlCmdError",
    "BindingError",
    "MissingParameterError",
    "ConnectionUnavailableError",
    "QueryError",
    "StreamError",
    "RowDecodeError",
]
