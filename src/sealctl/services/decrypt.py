"""Decrypt orchestration — load, decrypt, merge layers, extract, emit.

The pipeline fails fast: the first error aborts the call and no partial
output is produced.

``decrypt`` is the plain entry point (returns bytes, raises SealError).
``DecryptService`` wraps it for the CLI: settings-driven defaults, keyring
loading, and a ServiceResult instead of exceptions.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from sealctl.domain.errors import DumpingError, ExtractionError, SealError, StoreError, TruncateError
from sealctl.domain.layers import resolve_layers
from sealctl.domain.paths import parse_extract_path
from sealctl.domain.tree import Cipher, KeyServiceClient, PathSegment, Tree, TreeBranch
from sealctl.infrastructure.cipher import AesGcmCipher
from sealctl.infrastructure.keyservice import key_services_from_keyrings
from sealctl.infrastructure.loader import decrypt_layers, decrypt_tree, load_encrypted_file
from sealctl.infrastructure.stores import Store, resolve_store
from sealctl.services.base import BaseService
from sealctl.services.result import ServiceResult
from sealctl.services.telemetry import trace_span, traced

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DecryptOptions:
    """Everything one decrypt call needs."""

    cipher: Cipher
    input_store: Store
    output_store: Store
    input_path: str
    layers: bool = False
    ignore_mac: bool = False
    extract: Sequence[PathSegment] = ()
    key_services: Sequence[KeyServiceClient] = ()


@dataclass(frozen=True)
class DecryptOutput:
    """Plaintext bytes plus the layer chain that was merged (if any)."""

    output: bytes
    layers: list[str] = field(default_factory=list)


def _emit_plain_file(store: Store, tree: Tree) -> bytes:
    try:
        return store.emit_plain_file(tree.branches)
    except StoreError as exc:
        msg = f"Error dumping file: {exc}"
        raise DumpingError(msg) from exc


def extract(tree: Tree, path: Sequence[PathSegment], output_store: Store) -> bytes:
    """Emit only the node at *path* inside the first branch of *tree*.

    - A branch replaces the first branch and the whole tree is emitted, so
      the store keeps its document framing.
    - A string is returned as-is, without quoting or escaping.
    - Any other value goes through the store's value emitter.

    Raises:
        ExtractionError: If *path* does not exist in the tree.
        DumpingError: If the store cannot emit the result.
    """
    if not tree.branches:
        msg = "error truncating tree: document is empty"
        raise ExtractionError(msg)
    try:
        value: Any = tree.branches[0].truncate(path)
    except TruncateError as exc:
        msg = f"error truncating tree: {exc}"
        raise ExtractionError(msg) from exc

    match value:
        case TreeBranch():
            tree.branches[0] = value
            return _emit_plain_file(output_store, tree)
        case str():
            return value.encode("utf-8")
        case _:
            try:
                return output_store.emit_value(value)
            except StoreError as exc:
                msg = f"Error dumping tree: {exc}"
                raise DumpingError(msg) from exc


def run_decrypt(opts: DecryptOptions) -> DecryptOutput:
    """Run the full pipeline and report the merged layer chain alongside the output."""
    with trace_span("load"):
        tree = load_encrypted_file(opts.input_path, opts.input_store)

    with trace_span("decrypt"):
        decrypt_tree(tree, opts.cipher, opts.key_services, ignore_mac=opts.ignore_mac)

    chain: list[str] = []
    if opts.layers:
        with trace_span("layers") as span:
            chain = resolve_layers(opts.input_path)
            decrypt_layers(
                tree,
                opts.input_store,
                opts.cipher,
                opts.key_services,
                chain,
                ignore_mac=opts.ignore_mac,
            )
            if span is not None:
                span.annotate("count", len(chain))
        logger.debug("decrypt.layers", path=opts.input_path, chain=chain)

    with trace_span("emit"):
        if opts.extract:
            return DecryptOutput(extract(tree, opts.extract, opts.output_store), chain)
        return DecryptOutput(_emit_plain_file(opts.output_store, tree), chain)


def decrypt(opts: DecryptOptions) -> bytes:
    """Decrypt ``opts.input_path`` and return the plaintext bytes.

    Raises:
        SealError: The first failure of any stage, unchanged.
    """
    return run_decrypt(opts).output


class DecryptService(BaseService):
    """Decrypt files using settings-driven defaults."""

    @traced
    def decrypt_file(
        self,
        path: str | Path,
        *,
        extract: str | None = None,
        layers: bool | None = None,
        ignore_mac: bool | None = None,
        input_type: str | None = None,
        output_type: str | None = None,
        keyrings: list[Path] | None = None,
        key_services: Sequence[KeyServiceClient] | None = None,
    ) -> ServiceResult:
        """Decrypt *path*; ``None`` arguments fall back to the ``[decrypt]`` config.

        *key_services*, when given, replaces keyring loading entirely.
        """
        path = str(path)
        cfg = self._settings.decrypt
        try:
            extract_path = parse_extract_path(extract) if extract else []
            input_store = resolve_store(path, input_type or cfg.input_type)
            # Output defaults to the input format, explicit or detected.
            output_store = resolve_store(
                path, output_type or cfg.output_type or input_type or cfg.input_type
            )
            if key_services is None:
                key_services = key_services_from_keyrings(self._settings.keyring_paths(keyrings))
            opts = DecryptOptions(
                cipher=AesGcmCipher(),
                input_store=input_store,
                output_store=output_store,
                input_path=path,
                layers=cfg.layers if layers is None else layers,
                ignore_mac=cfg.ignore_mac if ignore_mac is None else ignore_mac,
                extract=extract_path,
                key_services=key_services,
            )
            result = run_decrypt(opts)
        except SealError as exc:
            return self._failure("decrypt", exc, path=path)

        warnings: list[str] = []
        if opts.ignore_mac:
            warnings.append("MAC verification skipped (--ignore-mac)")
        return ServiceResult(
            ok=True,
            op="decrypt",
            data={
                "path": path,
                "format": output_store.name,
                "layers": result.layers,
                "extract": list(extract_path),
                "output": result.output,
            },
            warnings=warnings,
        )
