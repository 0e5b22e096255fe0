from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import asdict, dataclass, replace

from .constants import (
    DEFAULT_HOST_V4,
    DEFAULT_HOST_V6,
    DEFAULT_LIFETIME_S,
    DEFAULT_PORT,
    PORT_ENV_VAR,
)
from .util import expand_path, parse_duration


@dataclass(frozen=True)
class ChatRuntimeConfig:
    config_path: str | None = None
    host: str | None = None
    port: int = DEFAULT_PORT
    ipv6: bool = False
    verbose: bool = False
    mode: str = "bundle"
    node_id: str | None = None
    lifetime_s: float = float(DEFAULT_LIFETIME_S)
    compress: bool = True
    connect_timeout_s: float = 10.0
    log_level: str = "WARNING"
    log_aiohttp_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None

    @property
    def resolved_host(self) -> str:
        if self.host:
            return self.host
        return DEFAULT_HOST_V6 if self.ipv6 else DEFAULT_HOST_V4

    @property
    def lifetime_ms(self) -> int:
        return int(self.lifetime_s * 1000)


def load_toml(path: str) -> dict:
    import tomllib

    with open(expand_path(path), "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: ChatRuntimeConfig, data: Mapping) -> ChatRuntimeConfig:
    data = dict(data)
    chat = data.get("chat")
    if isinstance(chat, dict):
        data = {**data, **chat}

    log_table = data.get("logging")
    if isinstance(log_table, dict):
        mapped: dict[str, object] = {}
        for key, target in (
            ("level", "log_level"),
            ("aiohttp_level", "log_aiohttp_level"),
            ("console", "log_console"),
            ("file", "log_file"),
            ("format", "log_format"),
            ("datefmt", "log_datefmt"),
        ):
            if key in log_table:
                mapped[target] = log_table.get(key)
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # Where the file came from is decided by the caller, never by the file.
    allowed.discard("config_path")
    updates = {k: v for k, v in data.items() if k in allowed}

    if "lifetime" in data and "lifetime_s" not in updates:
        updates["lifetime_s"] = data["lifetime"]
    if "lifetime_s" in updates:
        updates["lifetime_s"] = parse_duration(updates["lifetime_s"])
    if "port" in updates:
        updates["port"] = int(updates["port"])
    for key in ("connect_timeout_s",):
        if key in updates:
            updates[key] = float(updates[key])
    for key in ("host", "node_id", "log_file", "log_datefmt"):
        if key in updates and updates[key] == "":
            updates[key] = None

    return replace(base, **updates) if updates else base


def apply_environment(
    cfg: ChatRuntimeConfig, environ: Mapping[str, str] | None = None
) -> ChatRuntimeConfig:
    env = os.environ if environ is None else environ
    port = env.get(PORT_ENV_VAR)
    if port:
        cfg = replace(cfg, port=int(port))
    return cfg
