"""Shared pytest fixtures and test helpers for sealctl tests."""

from __future__ import annotations

import base64
import json
from io import StringIO
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner
from ruamel.yaml import YAML

from sealctl.domain.tree import Metadata, Tree, TreeBranch, compute_mac
from sealctl.infrastructure.cipher import AesGcmCipher
from sealctl.infrastructure.keyservice import LocalKeyService

KEK = bytes(range(32))
DATA_KEY = bytes(range(100, 132))
KEY_ID = "team"
LASTMODIFIED = "2024-05-01T12:00:00Z"


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def key_service() -> LocalKeyService:
    """Key service holding the test KEK."""
    return LocalKeyService({KEY_ID: KEK}, name="test")


@pytest.fixture
def keyring_file(tmp_path: Path) -> Path:
    """Keyring TOML file holding the test KEK."""
    path = tmp_path / "keyring.toml"
    path.write_text(f'[keys]\n{KEY_ID} = "{base64.b64encode(KEK).decode()}"\n', encoding="utf-8")
    return path


@pytest.fixture
def _isolated_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run from a temp directory with no inherited config.

    Use via ``@pytest.mark.usefixtures("_isolated_project")``.
    """
    monkeypatch.delenv("SEALCTL_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)


# ---------------------------------------------------------------------------
# Encrypted document builders
# ---------------------------------------------------------------------------


def encrypt_docs(
    docs: list[dict[str, Any]],
    *,
    unencrypted_suffix: str | None = "_unencrypted",
    encrypted_regex: str | None = None,
    tamper: bool = False,
) -> Tree:
    """Encrypt *docs* into a Tree the way the decrypt side expects.

    With *tamper*, the stored MAC covers different plaintext.
    """
    cipher = AesGcmCipher()
    tree = Tree(
        branches=[TreeBranch.from_mapping(doc) for doc in docs],
        metadata=Metadata(
            version="3.9.0",
            lastmodified=LASTMODIFIED,
            unencrypted_suffix=unencrypted_suffix,
            encrypted_regex=encrypted_regex,
            key_groups=[[LocalKeyService({KEY_ID: KEK}).wrap(KEY_ID, DATA_KEY)]],
        ),
    )
    plaintexts: list[Any] = []
    for path, encrypted, value, container, slot in list(tree.leaves()):
        plaintexts.append(value)
        if encrypted and value is not None:
            sealed = cipher.encrypt(value, DATA_KEY, ":".join(path) + ":")
            if isinstance(container, list):
                container[slot] = sealed
            else:
                container.value = sealed
    if tamper:
        plaintexts.append("tampered")
    tree.metadata.mac = cipher.encrypt(compute_mac(plaintexts), DATA_KEY, LASTMODIFIED)
    return tree


def _metadata(tree: Tree, drop: tuple[str, ...]) -> dict[str, Any]:
    meta = tree.metadata.to_mapping()
    for key in drop:
        meta.pop(key, None)
    return meta


def dump_yaml(tree: Tree, drop: tuple[str, ...] = ()) -> bytes:
    docs: list[str] = []
    for index, branch in enumerate(tree.branches):
        doc = branch.to_plain()
        if index == 0:
            doc["sops"] = _metadata(tree, drop)
        buf = StringIO()
        YAML().dump(doc, buf)
        docs.append(buf.getvalue())
    return "---\n".join(docs).encode("utf-8")


def dump_json(tree: Tree, drop: tuple[str, ...] = ()) -> bytes:
    doc = {**tree.branches[0].to_plain(), "sops": _metadata(tree, drop)}
    return json.dumps(doc, indent=2).encode("utf-8")


def _flatten(prefix: str, value: Any, out: list[str]) -> None:
    if isinstance(value, dict):
        for k, v in value.items():
            _flatten(f"{prefix}__{k}", v, out)
    elif isinstance(value, list):
        for i, v in enumerate(value):
            _flatten(f"{prefix}__{i}", v, out)
    else:
        out.append(f"{prefix}={value}")


def dump_dotenv(tree: Tree, drop: tuple[str, ...] = ()) -> bytes:
    lines = [f"{item.key}={item.value}" for item in tree.branches[0]]
    for key, value in _metadata(tree, drop).items():
        _flatten(f"sops_{key}", value, lines)
    return ("\n".join(lines) + "\n").encode("utf-8")


DUMPERS = {"yaml": dump_yaml, "json": dump_json, "dotenv": dump_dotenv}


def write_encrypted(
    path: Path,
    *docs: dict[str, Any],
    fmt: str = "yaml",
    drop: tuple[str, ...] = (),
    **kwargs: Any,
) -> Path:
    """Encrypt *docs* and write them to *path* in *fmt*; return *path*."""
    tree = encrypt_docs(list(docs), **kwargs)
    path.write_bytes(DUMPERS[fmt](tree, drop))
    return path
