"""Factory classes for coordinator and adapter instantiation.

This module centralizes the creation of the sync coordinator and its
collaborators, keeping the CLI layer free from direct adapter imports. This
follows the Clean Architecture principle that presentation layers should not
know about concrete infrastructure implementations.

The factories use lazy imports so commands that never touch the network or
the database (e.g., init) do not load httpx or open a connection.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from larder.adapters.http.json_source import HttpJsonSource
    from larder.core.sync.coordinator import Expander, PolicySelector, SyncCoordinator
    from larder.domain.config import LarderConfig
    from larder.ports.config import ConfigProvider
    from larder.ports.store import LocalStore


class ConfigFactory:
    """Factory for creating configuration-related instances."""

    def create_config_provider(self) -> ConfigProvider:
        """Create the TOML config provider (global + local cascade)."""
        from larder.adapters.config.toml_config_provider import TomlConfigProvider

        return TomlConfigProvider()

    def create_db_initializer(self) -> Callable[[Path], None]:
        """Return the function creating the cache database schema."""
        from larder.adapters.sqlite.schema import init_database

        return init_database


class CoordinatorFactory:
    """Factory wiring a SyncCoordinator from configuration.

    Args:
        config: Loaded LarderConfig.
        larder_dir: Workspace .larder directory; relative store paths are
            resolved against it.
        client: Optional pre-configured httpx.Client for the remote source
            (e.g., one with a MockTransport). The caller keeps ownership.
    """

    def __init__(
        self,
        config: LarderConfig,
        larder_dir: Path,
        client: httpx.Client | None = None,
    ) -> None:
        self._config = config
        self._larder_dir = larder_dir
        self._client = client

    @property
    def db_path(self) -> Path:
        """Resolved path of the SQLite cache database."""
        path = Path(self._config.store.path)
        return path if path.is_absolute() else self._larder_dir / path

    def create_store(self) -> LocalStore:
        """Create the configured local store.

        Returns:
            SQLiteRecordStore for backend "sqlite", InMemoryStore for "memory".
        """
        if self._config.store.backend == "memory":
            from larder.adapters.memory.store import InMemoryStore

            return InMemoryStore()

        from larder.adapters.sqlite.record_store import SQLiteRecordStore

        return SQLiteRecordStore(self.db_path)

    def create_remote(self) -> HttpJsonSource:
        """Create the HTTP remote source from the [remote] section."""
        from larder.adapters.http.json_source import HttpJsonSource

        remote = self._config.remote
        return HttpJsonSource(
            remote.base_url,
            remote.routes,
            timeout=remote.timeout,
            headers=remote.headers,
            client=self._client,
        )

    def create_policy(self, policy_override: str | None = None) -> PolicySelector:
        """Create the per-key policy selector from the [sync] section.

        Args:
            policy_override: Policy string applied to every key instead of
                the configured default and rules (e.g., from --policy).

        Raises:
            PolicyViolation: If a policy string is invalid.
        """
        from larder.core.sync.freshness import PrefixPolicySelector

        if policy_override is not None:
            return PrefixPolicySelector.from_config({}, policy_override)
        sync = self._config.sync
        return PrefixPolicySelector.from_config(sync.rules, sync.policy)

    def create_expander(self) -> Expander | None:
        """Create the collection expander, or None if no collections are set."""
        collections = self._config.remote.collections
        if not collections:
            return None

        from larder.adapters.http.json_source import expand_collection

        return expand_collection(collections)

    def create_coordinator(
        self,
        store: LocalStore | None = None,
        remote: HttpJsonSource | None = None,
        policy_override: str | None = None,
    ) -> SyncCoordinator:
        """Create a fully wired SyncCoordinator.

        Args:
            store: Store to use; created from config when omitted.
            remote: Remote source to use; created from config when omitted.
            policy_override: Optional policy string replacing the configured ones.

        Returns:
            SyncCoordinator owning its fetch executor. Closing it does not
            close the store or the remote source.
        """
        from larder.adapters.clock import SystemClock
        from larder.core.sync.coordinator import SyncCoordinator

        return SyncCoordinator(
            store if store is not None else self.create_store(),
            remote if remote is not None else self.create_remote(),
            self.create_policy(policy_override),
            clock=SystemClock(),
            max_workers=self._config.sync.max_workers,
            expand=self.create_expander(),
        )
