"""
The command interface consumed from the SQL builder.

A builder command renders itself to SQL text containing `$name`
placeholders and carries the values for those names. `TextCommand` is the
minimal implementation, for hand-written SQL.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Protocol, runtime_checkable


@runtime_checkable
class Command(Protocol):
    """
    Anything that can be executed with `Connection.execute_command`.

    Attributes
    ----------
    parameters : Mapping[str, Any]
        Values for the `$name` placeholders in `to_sql()`.
    """

    parameters: Mapping[str, Any]

    def to_sql(self) -> str:
        """Render the command as SQL with `$name` placeholders."""
        ...


@dataclass(frozen=True)
class TextCommand:
    text: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_sql(self) -> str:
        return self.text


__all__ = ["Command", "TextCommand"]
