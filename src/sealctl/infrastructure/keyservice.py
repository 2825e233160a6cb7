"""Key service clients — recover a document's data key from a master key.

A keyring maps key ids to 32-byte key-encryption keys (KEKs). A ``local``
master key entry stores the data key encrypted under the KEK named by its
id, with the id as additional data::

    # keyring.toml
    [keys]
    team = "<base64 32-byte KEK>"

Several keyrings can be configured; each becomes one client, consulted in
order by :meth:`Metadata.get_data_key`.
"""

from __future__ import annotations

import base64
import binascii
import logging
import tomllib
from collections.abc import Iterable, Mapping
from pathlib import Path

from sealctl.domain.errors import CipherError, ConfigError, KeyServiceError
from sealctl.domain.tree import MasterKey
from sealctl.infrastructure.cipher import KEY_SIZE, AesGcmCipher

logger = logging.getLogger(__name__)


class LocalKeyService:
    """Unwrap ``local`` master keys with KEKs held in memory."""

    key_type = "local"

    def __init__(self, keyring: Mapping[str, bytes], *, name: str = "local") -> None:
        self._keyring = dict(keyring)
        self._cipher = AesGcmCipher()
        self.name = name

    def __repr__(self) -> str:
        return f"LocalKeyService(name={self.name!r}, keys={sorted(self._keyring)})"

    def decrypt(self, key: MasterKey) -> bytes:
        """Return the data key wrapped in *key*.

        Raises:
            KeyServiceError: If the key type is not handled, the KEK is
                unknown, or the wrapped key cannot be opened.
        """
        if key.type != self.key_type:
            msg = f"{self.name}: unsupported key type {key.type!r}"
            raise KeyServiceError(msg)
        kek = self._keyring.get(key.id)
        if kek is None:
            msg = f"{self.name}: no key named {key.id!r} in keyring"
            raise KeyServiceError(msg)
        try:
            data_key = self._cipher.decrypt(key.enc, kek, key.id)
        except CipherError as exc:
            msg = f"{self.name}: could not unwrap data key: {exc}"
            raise KeyServiceError(msg) from exc
        if not isinstance(data_key, bytes):
            msg = f"{self.name}: wrapped data key for {key.id!r} is not binary"
            raise KeyServiceError(msg)
        logger.debug("Unwrapped data key with %s key %r", self.name, key.id)
        return data_key

    def wrap(self, key_id: str, data_key: bytes) -> MasterKey:
        """Wrap *data_key* under the KEK *key_id* (the inverse of decrypt)."""
        kek = self._keyring.get(key_id)
        if kek is None:
            msg = f"{self.name}: no key named {key_id!r} in keyring"
            raise KeyServiceError(msg)
        return MasterKey(type=self.key_type, id=key_id, enc=self._cipher.encrypt(data_key, kek, key_id))


def load_keyring(path: Path) -> dict[str, bytes]:
    """Read a TOML keyring file into ``{id: kek}``.

    Raises:
        ConfigError: If the file is unreadable, not TOML, or holds a key that
            is not base64 for exactly 32 bytes.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read keyring {path}: {exc}"
        raise ConfigError(msg) from exc
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in keyring {path}: {exc}"
        raise ConfigError(msg) from exc

    keyring: dict[str, bytes] = {}
    for key_id, encoded in (data.get("keys") or {}).items():
        try:
            kek = base64.b64decode(str(encoded), validate=True)
        except binascii.Error as exc:
            msg = f"Key {key_id!r} in {path} is not valid base64"
            raise ConfigError(msg) from exc
        if len(kek) != KEY_SIZE:
            msg = f"Key {key_id!r} in {path} must decode to {KEY_SIZE} bytes, got {len(kek)}"
            raise ConfigError(msg)
        keyring[key_id] = kek
    return keyring


def key_services_from_keyrings(paths: Iterable[Path]) -> list[LocalKeyService]:
    """Build one client per keyring file, preserving order."""
    return [LocalKeyService(load_keyring(p), name=str(p)) for p in paths]
