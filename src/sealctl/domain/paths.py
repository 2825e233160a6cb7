"""Extraction path expressions.

An extraction path is written as a chain of bracketed components::

    ["db"]["password"]
    ['servers'][0]["host"]

Quoted components are keys, bare integers are list indices.
"""

from __future__ import annotations

import re

from sealctl.domain.errors import ExtractionError
from sealctl.domain.tree import PathSegment

_COMPONENT = re.compile(r"""\[(?:"([^"]*)"|'([^']*)'|([0-9]+))\]""")


def parse_extract_path(expr: str) -> list[PathSegment]:
    """Parse *expr* into a list of keys and indices.

    An empty expression yields an empty path (extract nothing).

    Examples:
        >>> parse_extract_path('["db"]["password"]')
        ['db', 'password']
        >>> parse_extract_path("['servers'][0]")
        ['servers', 0]

    Raises:
        ExtractionError: If *expr* is not a sequence of bracketed components.
    """
    expr = expr.strip()
    path: list[PathSegment] = []
    pos = 0
    while pos < len(expr):
        match = _COMPONENT.match(expr, pos)
        if match is None:
            msg = f"invalid extract path {expr!r}: unexpected input at position {pos}"
            raise ExtractionError(msg)
        double, single, index = match.groups()
        if index is not None:
            path.append(int(index))
        else:
            path.append(double if double is not None else single)
        pos = match.end()
    return path


def format_extract_path(path: list[PathSegment]) -> str:
    """Render *path* back into bracket notation."""
    return "".join(f"[{c}]" if isinstance(c, int) else f'["{c}"]' for c in path)
