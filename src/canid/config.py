import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import tomli_w

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

CONFIG_DIR = Path.home() / ".config" / "canid"
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOG_FILE = CONFIG_DIR / "canid.log"
LOOKUP_LOG_FILE = CONFIG_DIR / "lookups.log"

DEFAULT_PREFIX_URL = "https://stat.ripe.net/data/prefix-overview/data.json"
DEFAULT_GEOLOC_URL = "https://stat.ripe.net/data/geoloc/data.json"


@dataclass
class Config:
    # Cache
    expiry: int = 86400  # seconds
    concurrency: int = 16  # simultaneous backend calls, per cache
    cache_file: str = ""  # snapshot path; empty disables load/save

    # Server
    listen_address: str = "0.0.0.0"
    listen_port: int = 8081

    # Backend
    prefix_url: str = DEFAULT_PREFIX_URL
    geoloc_url: str = DEFAULT_GEOLOC_URL
    backend_timeout: float = 10.0

    # Logging
    log_lookups: bool = True
    log_max_size_mb: int = 50


def ensure_dirs() -> None:
    """Create the configuration directory."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def _config_to_dict(config: Config) -> dict[str, Any]:
    return {
        "cache": {
            "expiry": config.expiry,
            "concurrency": config.concurrency,
            "file": config.cache_file,
        },
        "server": {
            "listen_address": config.listen_address,
            "listen_port": config.listen_port,
        },
        "backend": {
            "prefix_url": config.prefix_url,
            "geoloc_url": config.geoloc_url,
            "timeout": config.backend_timeout,
        },
        "logging": {
            "log_lookups": config.log_lookups,
            "log_max_size_mb": config.log_max_size_mb,
        },
    }


def _dict_to_config(data: dict[str, Any]) -> Config:
    config = Config()
    if "cache" in data:
        c = data["cache"]
        config.expiry = c.get("expiry", config.expiry)
        config.concurrency = c.get("concurrency", config.concurrency)
        config.cache_file = c.get("file", config.cache_file)
    if "server" in data:
        s = data["server"]
        config.listen_address = s.get("listen_address", config.listen_address)
        config.listen_port = s.get("listen_port", config.listen_port)
    if "backend" in data:
        b = data["backend"]
        config.prefix_url = b.get("prefix_url", config.prefix_url)
        config.geoloc_url = b.get("geoloc_url", config.geoloc_url)
        config.backend_timeout = b.get("timeout", config.backend_timeout)
    if "logging" in data:
        lg = data["logging"]
        config.log_lookups = lg.get("log_lookups", config.log_lookups)
        config.log_max_size_mb = lg.get("log_max_size_mb", config.log_max_size_mb)
    return config


def load_config(path: Path = CONFIG_FILE) -> Config:
    """Load config from disk, creating defaults if it doesn't exist."""
    if not path.exists():
        config = Config()
        save_config(config, path)
        return config
    data = tomllib.loads(path.read_text())
    return _dict_to_config(data)


def save_config(config: Config, path: Path = CONFIG_FILE) -> None:
    """Save config to disk."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(tomli_w.dumps(_config_to_dict(config)).encode())
