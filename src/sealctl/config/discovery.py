"""Config file discovery.

sealctl.toml is found by walking up from the working directory, the way
git finds .git/. SEALCTL_CONFIG, when set, names the file directly.
"""

from __future__ import annotations

import os
from pathlib import Path

from sealctl.domain.errors import ConfigError

CONFIG_FILENAME = "sealctl.toml"
CONFIG_ENV_VAR = "SEALCTL_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    """Return the config file governing *start* (default: cwd), or None.

    Raises:
        ConfigError: If SEALCTL_CONFIG is set but does not name a file.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        p = Path(env_path)
        if not p.is_file():
            msg = f"{CONFIG_ENV_VAR} points to {p}, which is not a file"
            raise ConfigError(msg)
        return p

    here = (start or Path.cwd()).resolve()
    for directory in (here, *here.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None
