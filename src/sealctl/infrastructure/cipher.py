"""AES-256-GCM value cipher.

Every encrypted leaf is stored as a self-describing envelope::

    ENC[AES256_GCM,data:<b64>,iv:<b64>,tag:<b64>,type:<type>]

``type`` restores the plaintext's scalar type on decryption. The additional
data binds a value to its position in the tree (its key path), so a value
moved to another key fails authentication.
"""

from __future__ import annotations

import base64
import binascii
import os
import re
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from sealctl.domain.errors import CipherError

KEY_SIZE = 32
NONCE_SIZE = 32
TAG_SIZE = 16

_ENVELOPE = re.compile(
    r"\AENC\[AES256_GCM,data:(?P<data>[^,]*),iv:(?P<iv>[^,]+),"
    r"tag:(?P<tag>[^,]+),type:(?P<type>[a-z]+)\]\Z"
)

VALUE_TYPES = frozenset({"str", "int", "float", "bool", "bytes", "comment"})


def _b64decode(raw: str, part: str) -> bytes:
    try:
        return base64.b64decode(raw, validate=True)
    except binascii.Error as exc:
        msg = f"invalid base64 in {part}: {exc}"
        raise CipherError(msg) from exc


def _from_plaintext(plaintext: bytes, value_type: str) -> Any:
    if value_type == "bytes":
        return plaintext
    text = plaintext.decode("utf-8")
    match value_type:
        case "str" | "comment":
            return text
        case "int":
            return int(text)
        case "float":
            return float(text)
        case "bool":
            return text.lower() == "true"
    msg = f"unknown value type {value_type!r}"
    raise CipherError(msg)


def _to_plaintext(value: Any) -> tuple[bytes, str]:
    if isinstance(value, bytes):
        return value, "bytes"
    if isinstance(value, bool):
        return (b"true" if value else b"false"), "bool"
    if isinstance(value, int):
        return str(value).encode("utf-8"), "int"
    if isinstance(value, float):
        return repr(value).encode("utf-8"), "float"
    if isinstance(value, str):
        return value.encode("utf-8"), "str"
    msg = f"cannot encrypt value of type {type(value).__name__}"
    raise CipherError(msg)


class AesGcmCipher:
    """Encrypt and decrypt single tree values with AES-256-GCM."""

    def decrypt(self, value: str, key: bytes, additional_data: str) -> Any:
        """Decrypt an envelope and return the typed plaintext.

        Raises:
            CipherError: If *value* is not a well-formed envelope, the key has
                the wrong size, or authentication fails.
        """
        match = _ENVELOPE.match(value)
        if match is None:
            msg = f"input string {value!r} does not match the encrypted value format"
            raise CipherError(msg)
        if len(key) != KEY_SIZE:
            msg = f"data key must be {KEY_SIZE} bytes, got {len(key)}"
            raise CipherError(msg)

        value_type = match.group("type")
        if value_type not in VALUE_TYPES:
            msg = f"unknown value type {value_type!r}"
            raise CipherError(msg)
        data = _b64decode(match.group("data"), "data")
        iv = _b64decode(match.group("iv"), "iv")
        tag = _b64decode(match.group("tag"), "tag")

        try:
            plaintext = AESGCM(key).decrypt(iv, data + tag, additional_data.encode("utf-8"))
        except (InvalidTag, ValueError) as exc:
            msg = f"could not decrypt value at {additional_data!r}: authentication failed"
            raise CipherError(msg) from exc
        try:
            return _from_plaintext(plaintext, value_type)
        except ValueError as exc:
            msg = f"could not convert value at {additional_data!r} to {value_type}: {exc}"
            raise CipherError(msg) from exc

    def encrypt(self, value: Any, key: bytes, additional_data: str) -> str:
        """Encrypt *value* into an envelope string."""
        plaintext, value_type = _to_plaintext(value)
        iv = os.urandom(NONCE_SIZE)
        sealed = AESGCM(key).encrypt(iv, plaintext, additional_data.encode("utf-8"))
        data, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return (
            f"ENC[AES256_GCM,data:{base64.b64encode(data).decode()},"
            f"iv:{base64.b64encode(iv).decode()},"
            f"tag:{base64.b64encode(tag).decode()},type:{value_type}]"
        )
