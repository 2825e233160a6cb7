"""Document tree — branches, items, metadata, and the decrypt walk.

A document is a list of branches (one per YAML document; JSON and dotenv
files have exactly one). A branch is an ordered list of ``TreeItem`` pairs;
values are nested branches, lists, or scalars.

The metadata section describes which leaves are encrypted (suffix and regex
selectors) and which master keys can recover the data key.

INVARIANT: Key order is preserved through load, decrypt, merge, and emit.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from sealctl.domain.errors import (
    DataKeyError,
    KeyServiceError,
    TruncateError,
)

PathSegment = str | int

# Master key types understood in the metadata section.
KEY_TYPES: tuple[str, ...] = ("local", "age", "pgp", "kms", "gcp_kms", "azure_kv", "hc_vault")

# Field names used by the various key types for their identifier.
_KEY_ID_FIELDS: tuple[str, ...] = ("id", "recipient", "fp", "arn", "resource_id", "vault_url")


class Cipher(Protocol):
    """Value cipher consumed by the decrypt walk."""

    def decrypt(self, value: str, key: bytes, additional_data: str) -> Any: ...


class KeyServiceClient(Protocol):
    """Client able to recover a data key from a single master key."""

    def decrypt(self, key: MasterKey) -> bytes: ...


# ---------------------------------------------------------------------------
# Branches
# ---------------------------------------------------------------------------


@dataclass
class TreeItem:
    """A single key/value pair inside a branch."""

    key: Any
    value: Any


class TreeBranch(list[TreeItem]):
    """Ordered mapping stored as a list of ``TreeItem``."""

    @classmethod
    def from_mapping(cls, mapping: Mapping[Any, Any]) -> TreeBranch:
        """Build a branch from a (possibly nested) mapping, keeping key order."""
        return cls(TreeItem(key, _to_tree_value(value)) for key, value in mapping.items())

    def get_item(self, key: Any) -> TreeItem | None:
        for item in self:
            if item.key == key:
                return item
        return None

    def keys(self) -> list[Any]:
        return [item.key for item in self]

    def to_plain(self) -> dict[Any, Any]:
        """Return the branch as nested plain dicts and lists."""
        return {item.key: to_plain_value(item.value) for item in self}

    def truncate(self, path: Sequence[PathSegment]) -> Any:
        """Follow *path* from this branch and return the node found there.

        String components select a key inside a branch. Integer components
        index into a list.

        Raises:
            TruncateError: If a key or index is missing, or a component
                tries to descend into a value that cannot be indexed that way.
        """
        current: Any = self
        for component in path:
            if isinstance(component, str):
                if not isinstance(current, TreeBranch):
                    msg = f"component ['{component}'] not found"
                    raise TruncateError(msg)
                item = current.get_item(component)
                if item is None:
                    msg = f"component ['{component}'] not found"
                    raise TruncateError(msg)
                current = item.value
            elif isinstance(component, int) and not isinstance(component, bool):
                if (
                    isinstance(current, TreeBranch)
                    or not isinstance(current, list)
                    or not 0 <= component < len(current)
                ):
                    msg = f"component [{component}] not found"
                    raise TruncateError(msg)
                current = current[component]
            else:
                msg = f"component [{component!r}] has unsupported type {type(component).__name__}"
                raise TruncateError(msg)
        return current


def _to_tree_value(value: Any) -> Any:
    if isinstance(value, TreeBranch):
        return value
    if isinstance(value, Mapping):
        return TreeBranch.from_mapping(value)
    if isinstance(value, list | tuple):
        return [_to_tree_value(v) for v in value]
    return value


def to_plain_value(value: Any) -> Any:
    """Convert branches nested anywhere in *value* to plain dicts."""
    if isinstance(value, TreeBranch):
        return value.to_plain()
    if isinstance(value, list | tuple):
        return [to_plain_value(v) for v in value]
    return value


def merge_branch(base: TreeBranch, layer: TreeBranch) -> TreeBranch:
    """Merge *layer* into *base* in place and return *base*.

    Keys already in *base* win. When both sides hold a branch under the same
    key the two are merged recursively. Keys only present in *layer* are
    appended in layer order.
    """
    for layer_item in layer:
        existing = base.get_item(layer_item.key)
        if existing is None:
            base.append(TreeItem(layer_item.key, layer_item.value))
        elif isinstance(existing.value, TreeBranch) and isinstance(layer_item.value, TreeBranch):
            merge_branch(existing.value, layer_item.value)
    return base


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MasterKey:
    """A master key entry able to unwrap the document data key."""

    type: str
    id: str
    enc: str

    @classmethod
    def from_mapping(cls, key_type: str, data: Mapping[str, Any]) -> MasterKey:
        key_id = next((str(data[f]) for f in _KEY_ID_FIELDS if data.get(f)), "")
        return cls(type=key_type, id=key_id, enc=str(data.get("enc", "")))

    def to_mapping(self) -> dict[str, str]:
        return {"id": self.id, "enc": self.enc}


def _parse_key_group(group: Mapping[str, Any]) -> list[MasterKey]:
    keys: list[MasterKey] = []
    for key_type in KEY_TYPES:
        for entry in group.get(key_type) or []:
            keys.append(MasterKey.from_mapping(key_type, entry))
    return keys


@dataclass
class Metadata:
    """The encryption metadata section of a document.

    Attributes:
        legacy_keys: Master keys listed directly under the metadata section
            instead of inside ``key_groups`` (older file layout). Folded into
            ``key_groups`` by the loader.
    """

    version: str = ""
    lastmodified: str = ""
    mac: str = ""
    unencrypted_suffix: str | None = None
    encrypted_suffix: str | None = None
    unencrypted_regex: str | None = None
    encrypted_regex: str | None = None
    key_groups: list[list[MasterKey]] = field(default_factory=list)
    legacy_keys: list[MasterKey] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Metadata:
        groups = [_parse_key_group(group) for group in data.get("key_groups") or []]
        return cls(
            version=str(data.get("version") or ""),
            lastmodified=str(data.get("lastmodified") or ""),
            mac=str(data.get("mac") or ""),
            unencrypted_suffix=data.get("unencrypted_suffix"),
            encrypted_suffix=data.get("encrypted_suffix"),
            unencrypted_regex=data.get("unencrypted_regex"),
            encrypted_regex=data.get("encrypted_regex"),
            key_groups=[g for g in groups if g],
            legacy_keys=_parse_key_group(data),
        )

    def to_mapping(self) -> dict[str, Any]:
        """Serialize back to the on-disk metadata layout."""
        data: dict[str, Any] = {}
        if self.key_groups:
            data["key_groups"] = [_group_to_mapping(group) for group in self.key_groups]
        data.update(_group_to_mapping(self.legacy_keys))
        data["lastmodified"] = self.lastmodified
        data["mac"] = self.mac
        for name in ("unencrypted_suffix", "encrypted_suffix", "unencrypted_regex", "encrypted_regex"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        data["version"] = self.version
        return data

    @property
    def has_selector(self) -> bool:
        """Whether any suffix or regex selector is configured."""
        return any(
            v is not None
            for v in (
                self.unencrypted_suffix,
                self.encrypted_suffix,
                self.unencrypted_regex,
                self.encrypted_regex,
            )
        )

    def _excluded(self, key: str) -> bool:
        if self.unencrypted_suffix and key.endswith(self.unencrypted_suffix):
            return True
        return bool(self.unencrypted_regex and re.search(self.unencrypted_regex, key))

    def _included(self, key: str) -> bool:
        if self.encrypted_suffix and key.endswith(self.encrypted_suffix):
            return True
        return bool(self.encrypted_regex and re.search(self.encrypted_regex, key))

    def scope_for(self, key: Any) -> bool | None:
        """Decide whether the subtree under *key* is encrypted.

        Returns None when this key alone does not decide it; the nearest
        deciding ancestor (or the document default) applies instead.
        """
        key = str(key)
        if self._excluded(key):
            return False
        if self._included(key):
            return True
        return None

    @property
    def encrypt_by_default(self) -> bool:
        """Leaves with no deciding ancestor are encrypted unless an
        inclusive selector (``encrypted_suffix``/``encrypted_regex``) is set."""
        return self.encrypted_suffix is None and self.encrypted_regex is None

    def get_data_key(self, key_services: Sequence[KeyServiceClient]) -> bytes:
        """Recover the data key by trying every master key with every client.

        Raises:
            DataKeyError: If no combination succeeds. The message lists every
                failed attempt.
        """
        keys = [key for group in self.key_groups for key in group]
        if not keys:
            msg = "Error getting data key: no master keys found in metadata"
            raise DataKeyError(msg)
        if not key_services:
            msg = "Error getting data key: no key services configured"
            raise DataKeyError(msg)

        failures: list[str] = []
        for key in keys:
            for service in key_services:
                try:
                    return service.decrypt(key)
                except KeyServiceError as exc:
                    failures.append(f"{key.type}:{key.id}: {exc}")
        detail = "; ".join(failures)
        msg = f"Error getting data key: no master key could be decrypted ({detail})"
        raise DataKeyError(msg)


def _group_to_mapping(group: Iterable[MasterKey]) -> dict[str, list[dict[str, str]]]:
    out: dict[str, list[dict[str, str]]] = {}
    for key in group:
        out.setdefault(key.type, []).append(key.to_mapping())
    return out


# ---------------------------------------------------------------------------
# Tree
# ---------------------------------------------------------------------------


@dataclass
class Tree:
    """A loaded document: its branches, metadata, and source path."""

    branches: list[TreeBranch]
    metadata: Metadata
    file_path: str = ""

    def leaves(self) -> Iterator[tuple[list[str], bool, Any, TreeItem | list[Any], Any]]:
        """Yield ``(key_path, encrypted, value, container, slot)`` for each leaf.

        *container* and *slot* let callers replace the leaf in place:
        ``container.value = ...`` for items, ``container[slot] = ...`` for lists.
        """
        for branch in self.branches:
            yield from self._walk_branch(branch, [], None)

    def _walk_branch(
        self, branch: TreeBranch, path: list[str], scope: bool | None
    ) -> Iterator[tuple[list[str], bool, Any, TreeItem | list[Any], Any]]:
        for item in branch:
            item_path = [*path, str(item.key)]
            item_scope = scope if scope is not None else self.metadata.scope_for(item.key)
            yield from self._walk_value(item.value, item_path, item_scope, item, None)

    def _walk_value(
        self,
        value: Any,
        path: list[str],
        scope: bool | None,
        container: TreeItem | list[Any],
        slot: Any,
    ) -> Iterator[tuple[list[str], bool, Any, TreeItem | list[Any], Any]]:
        if isinstance(value, TreeBranch):
            yield from self._walk_branch(value, path, scope)
        elif isinstance(value, list):
            for index, element in enumerate(value):
                yield from self._walk_value(element, path, scope, value, index)
        else:
            encrypted = scope if scope is not None else self.metadata.encrypt_by_default
            yield path, encrypted, value, container, slot

    def decrypt(self, cipher: Cipher, data_key: bytes) -> str:
        """Decrypt every in-scope leaf in place and return the computed MAC.

        The additional data for each value is its key path joined with
        ``:`` plus a trailing ``:``.
        """
        plaintexts: list[Any] = []
        for path, encrypted, value, container, slot in list(self.leaves()):
            if encrypted and isinstance(value, str):
                value = cipher.decrypt(value, data_key, ":".join(path) + ":")
                _replace_leaf(container, slot, value)
            plaintexts.append(value)
        return compute_mac(plaintexts)

    def merge_layer(self, layer: Tree) -> None:
        """Merge a decrypted predecessor layer; keys already present win."""
        for index, layer_branch in enumerate(layer.branches):
            if index < len(self.branches):
                merge_branch(self.branches[index], layer_branch)
            else:
                self.branches.append(layer_branch)


def _replace_leaf(container: TreeItem | list[Any], slot: Any, value: Any) -> None:
    if isinstance(container, TreeItem):
        container.value = value
    else:
        container[slot] = value


def _value_bytes(value: Any) -> bytes | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value
    if isinstance(value, bool):
        return b"true" if value else b"false"
    return str(value).encode("utf-8")


def compute_mac(values: Iterable[Any]) -> str:
    """Upper-case hex SHA-512 over the byte form of every plaintext leaf.

    ``None`` leaves do not contribute.
    """
    digest = hashlib.sha512()
    for value in values:
        raw = _value_bytes(value)
        if raw is not None:
            digest.update(raw)
    return digest.hexdigest().upper()
