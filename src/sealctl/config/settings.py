"""Unified settings — CLI flags, env vars, and TOML config in one object.

Priority chain (highest to lowest):
  1. Init kwargs  — CLI flags passed by Click
  2. Env vars     — ``SEALCTL_*`` prefix (``SEALCTL_DECRYPT__LAYERS=true``)
  3. TOML file    — ``sealctl.toml`` discovered via walk-up
  4. Code defaults — baked into the section models

Uses Pydantic Settings v2 with a custom :class:`TomlSettingsSource`.
"""

from __future__ import annotations

import threading
import tomllib
from pathlib import Path
from typing import Any

import click
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from sealctl.config.discovery import find_config
from sealctl.config.models import DecryptConfig, KeysConfig
from sealctl.domain.codes import ExitCode
from sealctl.domain.errors import ConfigError


def _config_exception(message: str) -> click.ClickException:
    exc = click.ClickException(message)
    exc.exit_code = int(ExitCode.ERROR_READING_CONFIG)
    return exc


def read_toml(path: Path | None) -> dict[str, Any]:
    """Parse *path* (empty when None or not a file)."""
    if path is None or not path.is_file():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as exc:
        msg = f"Invalid TOML in {path}: {exc}"
        raise _config_exception(msg) from exc


class TomlSettingsSource(PydanticBaseSettingsSource):
    """Serve already-parsed ``sealctl.toml`` sections to pydantic-settings."""

    def __init__(self, settings_cls: type[BaseSettings], data: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._data = data

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Return ``(value, field_name, value_is_complex)``."""
        val = self._data.get(field_name)
        return val, field_name, field_name in self._data

    def __call__(self) -> dict[str, Any]:
        return self._data


# Parsed TOML for the settings object under construction.
_pending = threading.local()


class SealSettings(BaseSettings):
    """Unified settings for the sealctl CLI.

    Stored on the :class:`AppContext` at the CLI root and handed to services.

    Attributes:
        project_root: Directory holding ``sealctl.toml`` (CWD if none).
            Relative keyring paths resolve against it.
        config_path: The config file in effect, if any.
    """

    model_config = {
        "frozen": True,
        "env_prefix": "SEALCTL_",
        "env_nested_delimiter": "__",
    }

    project_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # --- CLI flags ---
    json_output: bool = False
    quiet: bool = False
    verbose: bool = False
    log_json: bool = False

    # --- TOML sections ---
    decrypt: DecryptConfig = Field(default_factory=DecryptConfig)
    keys: KeysConfig = Field(default_factory=KeysConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Insert TOML source between env vars and defaults."""
        toml = TomlSettingsSource(settings_cls, getattr(_pending, "toml", None) or {})
        return init_settings, env_settings, toml

    @classmethod
    def from_cli(
        cls,
        *,
        config_path: str | None = None,
        project_root: Path | None = None,
        **cli_flags: Any,
    ) -> SealSettings:
        """Construct settings from a CLI invocation.

        Uses *config_path* when given, otherwise discovers ``sealctl.toml``
        by walking up from *project_root* (or CWD).
        """
        if config_path:
            toml_path = Path(config_path) if Path(config_path).is_file() else None
        else:
            try:
                toml_path = find_config(project_root)
            except ConfigError as exc:
                raise _config_exception(str(exc)) from exc

        if project_root is None:
            project_root = toml_path.parent if toml_path else Path.cwd()

        _pending.toml = read_toml(toml_path)
        try:
            return cls(project_root=project_root, config_path=toml_path, **cli_flags)
        finally:
            _pending.toml = None

    def keyring_paths(self, extra: list[Path] | None = None) -> list[Path]:
        """Configured keyrings (relative to ``project_root``) followed by *extra*."""
        configured = [p if p.is_absolute() else self.project_root / p for p in self.keys.keyrings]
        return [*configured, *(extra or [])]
