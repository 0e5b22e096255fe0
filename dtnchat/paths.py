from __future__ import annotations

import os
from pathlib import Path


def default_dtnchat_dir() -> Path:
    override = os.environ.get("DTNCHAT_HOME")
    if override:
        return Path(override)
    return Path.home() / ".dtnchat"


def default_config_path() -> Path:
    return default_dtnchat_dir() / "dtnchat.toml"
