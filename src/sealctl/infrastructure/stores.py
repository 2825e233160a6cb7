"""Serialization stores — read encrypted documents, write plaintext.

Each store understands one on-disk format. Loading returns a :class:`Tree`
whose metadata comes from the ``sops`` section of the document; emitting
turns decrypted branches (or a single bare value) back into bytes.

Stores raise :class:`LoadError` / :class:`MetadataNotFoundError` while
loading and :class:`StoreError` while emitting. Callers decide how an
emission failure is reported.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from io import StringIO
from pathlib import Path
from typing import Any, Protocol

from ruamel.yaml import YAML
from ruamel.yaml.constructor import RoundTripConstructor
from ruamel.yaml.error import YAMLError

from sealctl.domain.errors import ConfigError, LoadError, MetadataNotFoundError, StoreError
from sealctl.domain.tree import Metadata, Tree, TreeBranch, to_plain_value

METADATA_KEY = "sops"


class Store(Protocol):
    """Serializer for one file format."""

    name: str

    def load_encrypted_file(self, data: bytes) -> Tree: ...

    def emit_plain_file(self, branches: Sequence[TreeBranch]) -> bytes: ...

    def emit_value(self, value: Any) -> bytes: ...


def _split_metadata(doc: Mapping[Any, Any]) -> tuple[TreeBranch, Any]:
    """Return the document without its metadata key, and the metadata value."""
    body = {k: v for k, v in doc.items() if k != METADATA_KEY}
    return TreeBranch.from_mapping(body), doc.get(METADATA_KEY)


def _require_metadata(raw: Any) -> Metadata:
    if not isinstance(raw, Mapping):
        msg = "sops metadata not found"
        raise MetadataNotFoundError(msg)
    return Metadata.from_mapping(raw)


def _require_single(branches: Sequence[TreeBranch], fmt: str) -> TreeBranch:
    if len(branches) != 1:
        msg = f"{fmt} output expects exactly one document, got {len(branches)}"
        raise StoreError(msg)
    return branches[0]


# ---------------------------------------------------------------------------
# YAML
# ---------------------------------------------------------------------------


class _TextTimestampConstructor(RoundTripConstructor):
    """Round-trip constructor that keeps timestamps as the text written in the file."""

    def construct_text_timestamp(self, node: Any) -> str:
        return str(self.construct_scalar(node))


_TextTimestampConstructor.add_constructor(
    "tag:yaml.org,2002:timestamp", _TextTimestampConstructor.construct_text_timestamp
)


def _new_yaml() -> YAML:
    """Create a fresh round-trip YAML parser.

    A new instance per call keeps a failed dump from leaving a shared
    emitter in a broken state.
    """
    y = YAML()
    y.Constructor = _TextTimestampConstructor
    y.preserve_quotes = True
    y.default_flow_style = False
    return y


class YamlStore:
    """Multi-document YAML. Metadata lives in the first document carrying it."""

    name = "yaml"

    def load_encrypted_file(self, data: bytes) -> Tree:
        try:
            docs = list(_new_yaml().load_all(data.decode("utf-8")))
        except (YAMLError, UnicodeDecodeError) as exc:
            msg = f"Error unmarshalling input yaml: {exc}"
            raise LoadError(msg) from exc

        branches: list[TreeBranch] = []
        metadata_raw: Any = None
        for doc in docs:
            if doc is None:
                continue
            if not isinstance(doc, Mapping):
                msg = f"Error unmarshalling input yaml: top-level value is a {type(doc).__name__}"
                raise LoadError(msg)
            branch, raw = _split_metadata(doc)
            if metadata_raw is None:
                metadata_raw = raw
            branches.append(branch)
        return Tree(branches=branches, metadata=_require_metadata(metadata_raw))

    def _dump(self, value: Any) -> str:
        buf = StringIO()
        try:
            _new_yaml().dump(value, buf)
        except YAMLError as exc:
            msg = f"Error marshaling to yaml: {exc}"
            raise StoreError(msg) from exc
        return buf.getvalue()

    def emit_plain_file(self, branches: Sequence[TreeBranch]) -> bytes:
        docs = [self._dump(branch.to_plain()) for branch in branches]
        return "---\n".join(docs).encode("utf-8")

    def emit_value(self, value: Any) -> bytes:
        text = self._dump(to_plain_value(value))
        # Bare scalars are closed with an explicit document end marker.
        if text.endswith("\n...\n"):
            text = text[: -len("...\n")]
        return text.encode("utf-8")


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


class JsonStore:
    """Single-document JSON with the metadata under a top-level key."""

    name = "json"

    def load_encrypted_file(self, data: bytes) -> Tree:
        try:
            doc = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            msg = f"Error unmarshalling input json: {exc}"
            raise LoadError(msg) from exc
        if not isinstance(doc, dict):
            msg = f"Error unmarshalling input json: top-level value is a {type(doc).__name__}"
            raise LoadError(msg)
        branch, raw = _split_metadata(doc)
        return Tree(branches=[branch], metadata=_require_metadata(raw))

    def emit_plain_file(self, branches: Sequence[TreeBranch]) -> bytes:
        branch = _require_single(branches, "json")
        try:
            text = json.dumps(branch.to_plain(), indent="\t", ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            msg = f"Error marshaling to json: {exc}"
            raise StoreError(msg) from exc
        return (text + "\n").encode("utf-8")

    def emit_value(self, value: Any) -> bytes:
        try:
            return json.dumps(to_plain_value(value), ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as exc:
            msg = f"Error marshaling to json: {exc}"
            raise StoreError(msg) from exc


# ---------------------------------------------------------------------------
# dotenv
# ---------------------------------------------------------------------------

_DOTENV_PREFIX = f"{METADATA_KEY}_"
_DOTENV_SEP = "__"


def _unflatten(pairs: dict[str, str]) -> dict[str, Any]:
    """Rebuild nested metadata from ``a__0__b=value`` style keys.

    Numeric components become list indices.
    """
    root: dict[str, Any] = {}
    for flat_key, value in pairs.items():
        parts = flat_key.split(_DOTENV_SEP)
        node: Any = root
        for part, nxt in zip(parts, parts[1:], strict=False):
            default: Any = [] if nxt.isdigit() else {}
            if isinstance(node, list):
                index = int(part)
                while len(node) <= index:
                    node.append(None)
                if node[index] is None:
                    node[index] = default
                node = node[index]
            else:
                node = node.setdefault(part, default)
        last = parts[-1]
        if isinstance(node, list):
            index = int(last)
            while len(node) <= index:
                node.append(None)
            node[index] = value
        else:
            node[last] = value
    return root


class DotenvStore:
    """Flat ``KEY=VALUE`` files; metadata keys are prefixed with ``sops_``."""

    name = "dotenv"

    def load_encrypted_file(self, data: bytes) -> Tree:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            msg = f"Error reading dotenv input: {exc}"
            raise LoadError(msg) from exc

        body: dict[str, str] = {}
        meta: dict[str, str] = {}
        for lineno, line in enumerate(text.splitlines(), start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            key, sep, value = stripped.partition("=")
            if not sep or not key:
                msg = f"Error reading dotenv input: invalid line {lineno}: {line!r}"
                raise LoadError(msg)
            if key.startswith(_DOTENV_PREFIX):
                meta[key[len(_DOTENV_PREFIX) :]] = value
            else:
                body[key] = value
        raw = _unflatten(meta) if meta else None
        return Tree(branches=[TreeBranch.from_mapping(body)], metadata=_require_metadata(raw))

    def emit_plain_file(self, branches: Sequence[TreeBranch]) -> bytes:
        branch = _require_single(branches, "dotenv")
        lines: list[str] = []
        for item in branch:
            if isinstance(item.value, TreeBranch | list):
                msg = f"cannot use complex value in dotenv file: key {item.key!r}"
                raise StoreError(msg)
            value = item.value
            if isinstance(value, bool):
                value = "true" if value else "false"
            lines.append(f"{item.key}={'' if value is None else value}\n")
        return "".join(lines).encode("utf-8")

    def emit_value(self, value: Any) -> bytes:
        if isinstance(value, str):
            return value.encode("utf-8")
        msg = f"the dotenv store only supports emitting strings, got {type(value).__name__}"
        raise StoreError(msg)


# ---------------------------------------------------------------------------
# binary
# ---------------------------------------------------------------------------


class BinaryStore(JsonStore):
    """Arbitrary file content stored under a ``data`` key of a JSON container."""

    name = "binary"

    def emit_plain_file(self, branches: Sequence[TreeBranch]) -> bytes:
        branch = _require_single(branches, "binary")
        item = branch.get_item("data")
        if item is None:
            msg = "no binary data found in tree"
            raise StoreError(msg)
        if isinstance(item.value, bytes):
            return item.value
        if isinstance(item.value, str):
            return item.value.encode("utf-8")
        msg = f"binary data must be a string, got {type(item.value).__name__}"
        raise StoreError(msg)

    def emit_value(self, value: Any) -> bytes:
        if isinstance(value, str):
            return value.encode("utf-8")
        msg = f"the binary store only supports emitting strings, got {type(value).__name__}"
        raise StoreError(msg)


# ---------------------------------------------------------------------------
# Format selection
# ---------------------------------------------------------------------------

STORES: dict[str, type[Store]] = {
    "yaml": YamlStore,
    "json": JsonStore,
    "dotenv": DotenvStore,
    "binary": BinaryStore,
}

_EXTENSIONS: dict[str, str] = {
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
    ".env": "dotenv",
}


def store_for_format(name: str) -> Store:
    """Return the store named *name*.

    Raises:
        ConfigError: If *name* is not a known format.
    """
    cls = STORES.get(name.lower())
    if cls is None:
        msg = f"Unknown store format {name!r}; expected one of {', '.join(STORES)}"
        raise ConfigError(msg)
    return cls()


def store_for_path(path: str | Path) -> Store:
    """Return the store matching the extension of *path* (binary by default)."""
    return STORES[_EXTENSIONS.get(Path(path).suffix.lower(), "binary")]()


def resolve_store(path: str | Path, fmt: str | None) -> Store:
    """Explicit *fmt* wins; otherwise detect from *path*."""
    return store_for_format(fmt) if fmt else store_for_path(path)
