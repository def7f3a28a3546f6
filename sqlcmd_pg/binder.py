"""
Named parameter binding.

Commands produced by the SQL builder reference their parameters by name
(`$name`); the server only understands positional markers (`$1`, `$2`, ...).
`bind_parameters` rewrites one into the other.

Placeholder grammar: a `$` followed by an identifier that starts with a
letter or an underscore. A `$` preceded by another `$`, or an identifier
followed by `$` (dollar-quote tags such as `$body$`), is left alone, and so
are positional markers, which makes binding already-bound text a no-op.
"""

from __future__ import annotations

import re
from typing import Any, List, Mapping

from sqlcmd_pg.domain.models import BoundStatement
from sqlcmd_pg.exceptions import MissingParameterError

PLACEHOLDER_PATTERN = re.compile(r"(?<!\$)\$([A-Za-z_][A-Za-z0-9_]*)(?![A-Za-z0-9_$])")


def bind_parameters(template: str, parameters: Mapping[str, Any]) -> BoundStatement:
    """
    Replace every `$name` in `template` with the next positional marker.

    Repeated names are not deduplicated: each occurrence gets its own index
    and its own copy of the value in the argument list.

    Raises
    ------
    MissingParameterError
        If a placeholder names a key absent from `parameters`. A key mapped
        to None is present and binds SQL NULL.
    """
    args: List[Any] = []

    def _substitute(match: re.Match) -> str:
        name = match.group(1)
        if name not in parameters:
            raise MissingParameterError(name, template, parameters)
        args.append(parameters[name])
        return f"${len(args)}"

    text = PLACEHOLDER_PATTERN.sub(_substitute, template)
    return BoundStatement(text=text, args=tuple(args))


def placeholder_names(template: str) -> List[str]:
    """List placeholder names in occurrence order (duplicates kept)."""
    return PLACEHOLDER_PATTERN.findall(template)


__all__ = ["PLACEHOLDER_PATTERN", "bind_parameters", "placeholder_names"]
