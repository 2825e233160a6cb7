"""Tests for loading, fix-ups, and tree decryption."""

from __future__ import annotations

from pathlib import Path

import pytest

from sealctl.domain.errors import (
    CipherError,
    DataKeyError,
    LoadError,
    MacMismatchError,
    MacNotFoundError,
)
from sealctl.domain.tree import MasterKey, Metadata
from sealctl.infrastructure.cipher import AesGcmCipher
from sealctl.infrastructure.keyservice import LocalKeyService
from sealctl.infrastructure.loader import (
    DEFAULT_UNENCRYPTED_SUFFIX,
    apply_fixups,
    decrypt_layers,
    decrypt_tree,
    load_encrypted_file,
)
from sealctl.infrastructure.stores import JsonStore, YamlStore
from tests.conftest import DATA_KEY, LASTMODIFIED, write_encrypted


class TestFixups:
    def test_default_suffix_added_without_selector(self) -> None:
        meta = Metadata()
        assert apply_fixups(meta) == ["default_unencrypted_suffix"]
        assert meta.unencrypted_suffix == DEFAULT_UNENCRYPTED_SUFFIX

    def test_existing_selector_kept(self) -> None:
        meta = Metadata(encrypted_regex="^pw")
        assert apply_fixups(meta) == []
        assert meta.unencrypted_suffix is None

    def test_legacy_keys_become_first_group(self) -> None:
        legacy = MasterKey("age", "age1", "E")
        meta = Metadata(unencrypted_suffix="_u", legacy_keys=[legacy])
        assert apply_fixups(meta) == ["fold_legacy_keys"]
        assert meta.key_groups == [[legacy]]
        assert meta.legacy_keys == []

    def test_legacy_keys_join_existing_group(self) -> None:
        grouped = MasterKey("local", "team", "E")
        legacy = MasterKey("age", "age1", "E")
        meta = Metadata(unencrypted_suffix="_u", key_groups=[[grouped]], legacy_keys=[legacy, grouped])
        apply_fixups(meta)
        assert meta.key_groups == [[grouped, legacy]]


class TestLoadEncryptedFile:
    def test_sets_file_path(self, tmp_path: Path) -> None:
        path = write_encrypted(tmp_path / "s.yaml", {"a": "x"})
        tree = load_encrypted_file(path, YamlStore())
        assert tree.file_path == str(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(LoadError, match="Error reading file"):
            load_encrypted_file(tmp_path / "missing.yaml", YamlStore())


class TestDecryptTree:
    def test_decrypts_and_verifies(self, tmp_path: Path, key_service: LocalKeyService) -> None:
        path = write_encrypted(
            tmp_path / "s.yaml",
            {"db": {"password": "s3cr3t", "port": 5432}, "name_unencrypted": "app"},
        )
        tree = load_encrypted_file(path, YamlStore())
        assert decrypt_tree(tree, AesGcmCipher(), [key_service]) == DATA_KEY
        assert tree.branches[0].to_plain() == {
            "db": {"password": "s3cr3t", "port": 5432},
            "name_unencrypted": "app",
        }

    def test_unquoted_lastmodified(self, tmp_path: Path, key_service: LocalKeyService) -> None:
        path = write_encrypted(tmp_path / "s.yaml", {"a": "x"})
        text = path.read_text()
        for quoted in (f"'{LASTMODIFIED}'", f'"{LASTMODIFIED}"'):
            text = text.replace(quoted, LASTMODIFIED)
        assert f"lastmodified: {LASTMODIFIED}\n" in text
        path.write_text(text)
        tree = load_encrypted_file(path, YamlStore())
        assert decrypt_tree(tree, AesGcmCipher(), [key_service]) == DATA_KEY
        assert tree.branches[0].to_plain() == {"a": "x"}

    def test_mac_mismatch(self, tmp_path: Path, key_service: LocalKeyService) -> None:
        path = write_encrypted(tmp_path / "s.json", {"a": "x"}, fmt="json", tamper=True)
        tree = load_encrypted_file(path, JsonStore())
        with pytest.raises(MacMismatchError, match="MAC mismatch") as exc_info:
            decrypt_tree(tree, AesGcmCipher(), [key_service])
        assert not isinstance(exc_info.value, MacNotFoundError)

    def test_ignore_mac_skips_mismatch(self, tmp_path: Path, key_service: LocalKeyService) -> None:
        path = write_encrypted(tmp_path / "s.json", {"a": "x"}, fmt="json", tamper=True)
        tree = load_encrypted_file(path, JsonStore())
        decrypt_tree(tree, AesGcmCipher(), [key_service], ignore_mac=True)
        assert tree.branches[0].to_plain() == {"a": "x"}

    def test_missing_mac(self, tmp_path: Path, key_service: LocalKeyService) -> None:
        path = write_encrypted(tmp_path / "s.json", {"a": "x"}, fmt="json", drop=("mac",))
        tree = load_encrypted_file(path, JsonStore())
        with pytest.raises(MacNotFoundError):
            decrypt_tree(tree, AesGcmCipher(), [key_service])

    def test_no_matching_key(self, tmp_path: Path) -> None:
        path = write_encrypted(tmp_path / "s.yaml", {"a": "x"})
        tree = load_encrypted_file(path, YamlStore())
        with pytest.raises(DataKeyError):
            decrypt_tree(tree, AesGcmCipher(), [LocalKeyService({"other": bytes(32)})])

    def test_value_moved_to_other_key_fails(
        self, tmp_path: Path, key_service: LocalKeyService
    ) -> None:
        path = write_encrypted(tmp_path / "s.json", {"a": "x", "b": "y"}, fmt="json")
        text = path.read_text()
        tree = load_encrypted_file(path, JsonStore())
        a, b = tree.branches[0][0].value, tree.branches[0][1].value
        path.write_text(text.replace(a, "@A@").replace(b, a).replace("@A@", b))
        tree = load_encrypted_file(path, JsonStore())
        with pytest.raises(CipherError):
            decrypt_tree(tree, AesGcmCipher(), [key_service])


class TestDecryptLayers:
    def test_requested_document_overrides_layers(
        self, tmp_path: Path, key_service: LocalKeyService
    ) -> None:
        write_encrypted(tmp_path / "s001.yaml", {"a": "one", "b": "one", "c": "one"})
        write_encrypted(tmp_path / "s002.yaml", {"a": "two", "b": "two"})
        top = write_encrypted(tmp_path / "s003.yaml", {"a": "three"})
        tree = load_encrypted_file(top, YamlStore())
        cipher = AesGcmCipher()
        decrypt_tree(tree, cipher, [key_service])
        decrypt_layers(
            tree,
            YamlStore(),
            cipher,
            [key_service],
            [str(tmp_path / "s002.yaml"), str(tmp_path / "s001.yaml")],
        )
        assert tree.branches[0].to_plain() == {"a": "three", "b": "two", "c": "one"}

    def test_layer_mac_checked(self, tmp_path: Path, key_service: LocalKeyService) -> None:
        write_encrypted(tmp_path / "s001.yaml", {"b": "one"}, tamper=True)
        top = write_encrypted(tmp_path / "s002.yaml", {"a": "two"})
        tree = load_encrypted_file(top, YamlStore())
        decrypt_tree(tree, AesGcmCipher(), [key_service])
        with pytest.raises(MacMismatchError):
            decrypt_layers(
                tree, YamlStore(), AesGcmCipher(), [key_service], [str(tmp_path / "s001.yaml")]
            )
