"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults live here, ``sealctl.toml`` only holds
overrides. A project needs no config file at all unless it uses keyrings.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator


class DecryptConfig(BaseModel):
    """[decrypt] section — defaults for ``sealctl decrypt`` flags."""

    model_config = {"frozen": True}

    layers: bool = False
    ignore_mac: bool = False
    input_type: str | None = None
    output_type: str | None = None

    @field_validator("input_type", "output_type")
    @classmethod
    def _lower(cls, value: str | None) -> str | None:
        return value.lower() if value else None


class KeysConfig(BaseModel):
    """[keys] section."""

    model_config = {"frozen": True}

    keyrings: list[Path] = Field(default_factory=list)
