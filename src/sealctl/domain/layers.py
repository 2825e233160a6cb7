"""Layer-chain resolution from a document's file name.

A layered document ends its base name in a layer number (``secrets003.yaml``
is layer 3). Its predecessors are the same name with every lower layer
number, zero-padded to the same width: ``secrets002.yaml`` then
``secrets001.yaml``. Layer 0 is never part of a chain.

INVARIANT: A chain is total. Either every predecessor exists and the full
chain is returned, or resolution raises and no path is returned.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

from sealctl.domain.errors import LayerError

_TRAILING_DIGITS = re.compile(r"[0-9]+\Z")


def split_layer(path: str) -> tuple[str, str]:
    """Return ``(digit_run, extension)`` for *path*.

    The digit run is the maximal run of ASCII digits ending the base name
    (path minus extension).

    Raises:
        LayerError: If the base name does not end in a digit.
    """
    ext = os.path.splitext(path)[1]
    base = path[: len(path) - len(ext)]
    match = _TRAILING_DIGITS.search(base)
    if match is None:
        msg = f"could not extract layer from {path}"
        raise LayerError(msg)
    return match.group(0), ext


def layer_path(path: str, digits: str, ext: str, layer: int) -> str:
    """Render the path of *layer*, keeping the width of *digits*.

    Every occurrence of ``digits + ext`` in *path* is replaced, mirroring a
    plain template substitution over the whole path.
    """
    return path.replace(digits + ext, f"{layer:0{len(digits)}d}{ext}")


def resolve_layers(path: str) -> list[str]:
    """Resolve the predecessor layers of *path*, nearest first.

    Examples:
        With ``secrets001.yaml`` and ``secrets002.yaml`` on disk,
        ``resolve_layers("secrets003.yaml")`` returns
        ``["secrets002.yaml", "secrets001.yaml"]``.

    Raises:
        LayerError: If no layer number can be read from *path*, or if any
            predecessor file is missing.
    """
    digits, ext = split_layer(path)
    try:
        layer = int(digits)
    except ValueError as exc:
        msg = f"could not parse layer {digits}: {exc}"
        raise LayerError(msg) from exc

    layers: list[str] = []
    for i in range(layer - 1, 0, -1):
        candidate = layer_path(path, digits, ext, i)
        if not Path(candidate).exists():
            msg = f"missing layer {candidate!r}: no such file"
            raise LayerError(msg)
        layers.append(candidate)

    return layers
