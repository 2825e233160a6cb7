"""Load encrypted files and decrypt trees.

``load_encrypted_file`` reads and parses a file, then applies fix-ups that
bring documents written by older releases up to the current metadata layout.
``decrypt_tree`` recovers the data key, decrypts every in-scope leaf, and
checks the MAC. ``decrypt_layers`` does both for each predecessor layer and
merges the results into the requested document.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

import structlog

from sealctl.domain.errors import LoadError, MacMismatchError, MacNotFoundError
from sealctl.domain.tree import Cipher, KeyServiceClient, Metadata, Tree
from sealctl.infrastructure.stores import Store

logger = structlog.get_logger(__name__)

DEFAULT_UNENCRYPTED_SUFFIX = "_unencrypted"


# ---------------------------------------------------------------------------
# Fix-ups
# ---------------------------------------------------------------------------


def _default_unencrypted_suffix(metadata: Metadata) -> str | None:
    """Files predating encryption selectors implicitly used ``_unencrypted``."""
    if metadata.has_selector:
        return None
    metadata.unencrypted_suffix = DEFAULT_UNENCRYPTED_SUFFIX
    return "default_unencrypted_suffix"


def _fold_legacy_keys(metadata: Metadata) -> str | None:
    """Master keys listed outside ``key_groups`` form a single group."""
    if not metadata.legacy_keys:
        return None
    if not metadata.key_groups:
        metadata.key_groups = [list(metadata.legacy_keys)]
    else:
        metadata.key_groups[0].extend(
            k for k in metadata.legacy_keys if k not in metadata.key_groups[0]
        )
    metadata.legacy_keys = []
    return "fold_legacy_keys"


FIXUPS: tuple[Callable[[Metadata], str | None], ...] = (
    _default_unencrypted_suffix,
    _fold_legacy_keys,
)


def apply_fixups(metadata: Metadata) -> list[str]:
    """Apply every fix-up in order and return the names of those that changed something."""
    applied: list[str] = []
    for fixup in FIXUPS:
        name = fixup(metadata)
        if name is not None:
            applied.append(name)
    return applied


# ---------------------------------------------------------------------------
# Load / decrypt
# ---------------------------------------------------------------------------


def load_encrypted_file(path: str | Path, store: Store) -> Tree:
    """Read *path* through *store* and return its (still encrypted) tree.

    Raises:
        LoadError: If the file cannot be read or parsed.
        MetadataNotFoundError: If the document has no metadata section.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as exc:
        msg = f"Error reading file {path}: {exc.strerror or exc}"
        raise LoadError(msg) from exc

    tree = store.load_encrypted_file(data)
    tree.file_path = str(path)
    applied = apply_fixups(tree.metadata)
    if applied:
        logger.debug("load.fixups", path=str(path), fixups=applied)
    return tree


def decrypt_tree(
    tree: Tree,
    cipher: Cipher,
    key_services: Sequence[KeyServiceClient],
    *,
    ignore_mac: bool = False,
) -> bytes:
    """Decrypt *tree* in place and return its data key.

    Raises:
        DataKeyError: If no key service recovers the data key.
        CipherError: If a value or the stored MAC cannot be decrypted.
        MacMismatchError: If the MAC is missing or differs, unless
            *ignore_mac* is set.
    """
    data_key = tree.metadata.get_data_key(key_services)
    computed = tree.decrypt(cipher, data_key)

    if ignore_mac:
        logger.debug("decrypt.mac_skipped", path=tree.file_path)
        return data_key

    if not tree.metadata.mac:
        msg = f"MAC not found in metadata of {tree.file_path or 'document'}"
        raise MacNotFoundError(msg)
    stored = cipher.decrypt(tree.metadata.mac, data_key, tree.metadata.lastmodified)
    if stored != computed:
        msg = (
            f"MAC mismatch in {tree.file_path or 'document'}. "
            f"File has {stored}, computed {computed}"
        )
        raise MacMismatchError(msg)
    return data_key


def decrypt_layers(
    tree: Tree,
    store: Store,
    cipher: Cipher,
    key_services: Sequence[KeyServiceClient],
    layers: Sequence[str],
    *,
    ignore_mac: bool = False,
) -> None:
    """Load, decrypt, and merge each layer into *tree*, in the given order.

    *layers* is nearest predecessor first. Keys already in *tree* win over
    a layer's keys, so the requested document overrides its nearest
    predecessor, which overrides the one before it.
    """
    for layer_path in layers:
        layer = load_encrypted_file(layer_path, store)
        decrypt_tree(layer, cipher, key_services, ignore_mac=ignore_mac)
        tree.merge_layer(layer)
        logger.debug("decrypt.layer_merged", path=tree.file_path, layer=layer_path)
