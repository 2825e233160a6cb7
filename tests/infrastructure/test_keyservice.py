"""Tests for the local key service and keyring loading."""

from __future__ import annotations

import base64
from pathlib import Path

import pytest

from sealctl.domain.errors import ConfigError, KeyServiceError
from sealctl.domain.tree import MasterKey
from sealctl.infrastructure.keyservice import (
    LocalKeyService,
    key_services_from_keyrings,
    load_keyring,
)
from tests.conftest import DATA_KEY, KEK, KEY_ID


class TestLocalKeyService:
    def test_unwraps_data_key(self, key_service: LocalKeyService) -> None:
        master = key_service.wrap(KEY_ID, DATA_KEY)
        assert master.type == "local"
        assert master.id == KEY_ID
        assert key_service.decrypt(master) == DATA_KEY

    def test_rejects_other_key_types(self, key_service: LocalKeyService) -> None:
        with pytest.raises(KeyServiceError, match="unsupported key type 'age'"):
            key_service.decrypt(MasterKey("age", KEY_ID, "x"))

    def test_unknown_key_id(self, key_service: LocalKeyService) -> None:
        with pytest.raises(KeyServiceError, match="no key named 'other'"):
            key_service.decrypt(MasterKey("local", "other", "x"))

    def test_wrong_kek(self, key_service: LocalKeyService) -> None:
        master = LocalKeyService({KEY_ID: bytes(32)}).wrap(KEY_ID, DATA_KEY)
        with pytest.raises(KeyServiceError, match="could not unwrap"):
            key_service.decrypt(master)

    def test_non_binary_wrapped_key(self, key_service: LocalKeyService) -> None:
        from sealctl.infrastructure.cipher import AesGcmCipher

        enc = AesGcmCipher().encrypt("text", KEK, KEY_ID)
        with pytest.raises(KeyServiceError, match="not binary"):
            key_service.decrypt(MasterKey("local", KEY_ID, enc))

    def test_wrap_unknown_id(self, key_service: LocalKeyService) -> None:
        with pytest.raises(KeyServiceError):
            key_service.wrap("missing", DATA_KEY)


class TestLoadKeyring:
    def test_loads_keys(self, keyring_file: Path) -> None:
        assert load_keyring(keyring_file) == {KEY_ID: KEK}

    def test_empty_keyring(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.toml"
        path.write_text("")
        assert load_keyring(path) == {}

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Cannot read keyring"):
            load_keyring(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("[keys\n")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_keyring(path)

    def test_invalid_base64(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text('[keys]\nteam = "***"\n')
        with pytest.raises(ConfigError, match="not valid base64"):
            load_keyring(path)

    def test_wrong_length(self, tmp_path: Path) -> None:
        path = tmp_path / "short.toml"
        path.write_text(f'[keys]\nteam = "{base64.b64encode(b"short").decode()}"\n')
        with pytest.raises(ConfigError, match="must decode to 32 bytes"):
            load_keyring(path)

    def test_one_service_per_keyring(self, keyring_file: Path, tmp_path: Path) -> None:
        empty = tmp_path / "empty.toml"
        empty.write_text("")
        services = key_services_from_keyrings([keyring_file, empty])
        assert [s.name for s in services] == [str(keyring_file), str(empty)]
        assert services[0].decrypt(services[0].wrap(KEY_ID, DATA_KEY)) == DATA_KEY
