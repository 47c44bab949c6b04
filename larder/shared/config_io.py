"""Configuration I/O utilities for reading and writing TOML config files.

This module locates config files and converts LarderConfig to and from TOML.
"""

import os
import platform
import tomllib  # Built-in Python 3.11+
from dataclasses import asdict
from pathlib import Path
from typing import Any

import tomli_w

from larder.domain.config import LarderConfig


def get_global_config_path() -> Path:
    """Get the path to the global config file.

    The location is platform-dependent:
    - Linux/macOS: $XDG_CONFIG_HOME/larder/config.toml or ~/.config/larder/config.toml
    - Windows: %APPDATA%/larder/config.toml

    Returns:
        Path to the global config file (may not exist)
    """
    if platform.system() == "Windows":
        appdata = os.environ.get("APPDATA", "")
        if appdata:
            return Path(appdata) / "larder" / "config.toml"
        # Fallback to home directory
        return Path.home() / ".config" / "larder" / "config.toml"
    else:
        # Unix-like: respect XDG_CONFIG_HOME
        xdg_config = os.environ.get("XDG_CONFIG_HOME", "")
        if xdg_config:
            return Path(xdg_config) / "larder" / "config.toml"
        return Path.home() / ".config" / "larder" / "config.toml"


def load_config_data(path: Path) -> dict[str, Any]:
    """Load raw TOML data from a config file.

    Args:
        path: Path to config.toml file

    Returns:
        Dictionary with parsed TOML data

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is malformed
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in config file: {e}") from e


def load_config(path: Path) -> LarderConfig:
    """Load configuration from a TOML file on top of the built-in defaults.

    Args:
        path: Path to config.toml file

    Returns:
        Parsed LarderConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is malformed or has invalid values
    """
    data = load_config_data(path)
    return LarderConfig.from_partial(LarderConfig.default(), data)


def config_to_data(config: LarderConfig) -> dict[str, Any]:
    """Convert a LarderConfig to a TOML-serializable dictionary."""
    return asdict(config)


def dump_config(config: LarderConfig) -> str:
    """Render a LarderConfig as TOML text loadable by load_config()."""
    return tomli_w.dumps(config_to_data(config))


def create_default_config_file(path: Path, base_url: str | None = None) -> None:
    """Create a default config.toml file with sensible defaults and comments.

    Args:
        path: Destination path for config.toml
        base_url: Remote base URL to write (default: the built-in one)
    """
    remote_url = base_url or LarderConfig.default().remote.base_url
    # We use a template string to preserve comments and formatting
    template = f"""\
# Larder Configuration
# Created by: larder init

[sync]
# Default freshness policy for every key:
#   "absent"          fetch only when nothing is cached
#   "always"          fetch on every observe
#   "stale:<seconds>" fetch when the last refresh is older than <seconds>
policy = "stale:60"

# Worker threads running remote fetches
max_workers = 4

# Seconds 'larder refresh' waits for a fetch before giving up
refresh_timeout = 30.0

# Per key-prefix policy overrides (longest prefix wins)
[sync.rules]
"user:" = "stale:300"

[store]
# "sqlite" (durable) or "memory" (lost when the process exits)
backend = "sqlite"

# Database file, relative to the .larder directory
path = "cache.db"

[remote]
# Base URL the routes below are resolved against
base_url = "{remote_url}"

# Request timeout in seconds
timeout = 10.0

# Key kind -> path template; "{{id}}" is replaced with the part after ':'
[remote.routes]
post = "/posts/{{id}}"
posts = "/posts"
user = "/users/{{id}}"
users = "/users"

# Collection kind -> item kind; fetched lists are also cached item by item
[remote.collections]
posts = "post"
users = "user"

# Extra headers sent with every request
[remote.headers]
"""

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        f.write(template)
