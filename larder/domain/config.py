"""Config domain models for larder.

Configuration is stored in .larder/config.toml (with a global fallback) and
describes how the sync engine is wired: which freshness policy applies to
which keys, where the local store lives, and how the remote source is
reached. This module defines the domain models that represent validated
configuration state.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Literal


@dataclass(frozen=True)
class SyncConfig:
    """Configuration for the sync coordinator.

    Attributes:
        policy: Default freshness policy ("absent", "always" or "stale:<seconds>")
        rules: Key prefix to policy overrides (e.g., {"post:": "stale:60"})
        max_workers: Worker threads used for remote fetches
        refresh_timeout: Seconds an explicit refresh waits before giving up

    Raises:
        ValueError: If max_workers or refresh_timeout is not positive.
    """

    policy: str = "stale:60"
    rules: dict[str, str] = field(default_factory=dict)
    max_workers: int = 4
    refresh_timeout: float = 30.0

    def __post_init__(self) -> None:
        """Validate sync config after initialization."""
        if self.max_workers <= 0:
            raise ValueError(f"max_workers must be positive, got {self.max_workers}")
        if self.refresh_timeout <= 0:
            raise ValueError(
                f"refresh_timeout must be positive, got {self.refresh_timeout}"
            )


@dataclass(frozen=True)
class StoreConfig:
    """Configuration for the local store.

    Attributes:
        backend: "sqlite" (durable, default) or "memory" (process lifetime only)
        path: SQLite database path, relative to the .larder directory
    """

    backend: Literal["sqlite", "memory"] = "sqlite"
    path: str = "cache.db"

    def __post_init__(self) -> None:
        """Validate store config after initialization."""
        if self.backend not in ("sqlite", "memory"):
            raise ValueError(
                f"backend must be 'sqlite' or 'memory', got {self.backend!r}"
            )
        if not self.path:
            raise ValueError("path cannot be empty")


@dataclass(frozen=True)
class RemoteConfig:
    """Configuration for the HTTP remote source.

    Attributes:
        base_url: Base URL all routes are resolved against
        timeout: Request timeout in seconds
        routes: Key kind to path template (e.g., {"post": "/posts/{id}"})
        headers: Extra request headers (e.g., an API token)
        collections: Collection kind to item kind; fetched collections are
                     also cached item by item (e.g., {"posts": "post"})

    Raises:
        ValueError: If timeout is not positive.
    """

    base_url: str = "https://jsonplaceholder.typicode.com"
    timeout: float = 10.0
    routes: dict[str, str] = field(
        default_factory=lambda: {
            "post": "/posts/{id}",
            "posts": "/posts",
            "user": "/users/{id}",
            "users": "/users",
        }
    )
    headers: dict[str, str] = field(default_factory=dict)
    collections: dict[str, str] = field(
        default_factory=lambda: {"posts": "post", "users": "user"}
    )

    def __post_init__(self) -> None:
        """Validate remote config after initialization."""
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")


@dataclass(frozen=True)
class LarderConfig:
    """Complete larder configuration.

    Attributes:
        sync: Coordinator and freshness configuration
        store: Local store configuration
        remote: Remote source configuration
    """

    sync: SyncConfig = field(default_factory=SyncConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)

    @staticmethod
    def default() -> "LarderConfig":
        """Create a config with all default values."""
        return LarderConfig(
            sync=SyncConfig(),
            store=StoreConfig(),
            remote=RemoteConfig(),
        )

    @staticmethod
    def from_partial(base: "LarderConfig", data: dict[str, Any]) -> "LarderConfig":
        """Overlay raw config data on an existing config.

        Values present in data replace the corresponding fields of base;
        missing sections and fields keep their base values. Each section is
        re-validated through its constructor.

        Args:
            base: Config providing the values not present in data
            data: Raw config dictionary (e.g., parsed TOML)

        Returns:
            New LarderConfig with data applied

        Raises:
            ValueError: If a section is not a table, a field is unknown,
                or a value fails validation.
        """
        sections: dict[str, Any] = {}
        for section in fields(LarderConfig):
            current = getattr(base, section.name)
            overrides = data.get(section.name, {})
            if not isinstance(overrides, dict):
                raise ValueError(f"[{section.name}] must be a table")

            known = {f.name for f in fields(current)}
            unknown = set(overrides) - known
            if unknown:
                raise ValueError(
                    f"Unknown option(s) in [{section.name}]: {', '.join(sorted(unknown))}"
                )

            values = {name: getattr(current, name) for name in known}
            values.update(overrides)
            try:
                sections[section.name] = type(current)(**values)
            except TypeError as e:
                raise ValueError(f"Invalid [{section.name}] section: {e}") from e

        return LarderConfig(**sections)
