"""Unit tests for config domain models."""

import pytest

from larder.domain.config import LarderConfig, RemoteConfig, StoreConfig, SyncConfig


class TestSectionValidation:
    """Tests for per-section validation."""

    def test_sync_defaults(self) -> None:
        sync = SyncConfig()
        assert sync.policy == "stale:60"
        assert sync.rules == {}
        assert sync.max_workers == 4
        assert sync.refresh_timeout == 30.0

    @pytest.mark.parametrize("workers", [0, -1])
    def test_sync_rejects_non_positive_workers(self, workers: int) -> None:
        with pytest.raises(ValueError, match="max_workers must be positive"):
            SyncConfig(max_workers=workers)

    def test_sync_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError, match="refresh_timeout must be positive"):
            SyncConfig(refresh_timeout=0)

    def test_store_rejects_unknown_backend(self) -> None:
        with pytest.raises(ValueError, match="backend must be"):
            StoreConfig(backend="redis")  # type: ignore[arg-type]

    def test_store_rejects_empty_path(self) -> None:
        with pytest.raises(ValueError, match="path cannot be empty"):
            StoreConfig(path="")

    def test_remote_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError, match="timeout must be positive"):
            RemoteConfig(timeout=-1)

    def test_remote_default_routes_cover_collections(self) -> None:
        """Every default collection kind and item kind has a route."""
        remote = RemoteConfig()
        for collection, item in remote.collections.items():
            assert collection in remote.routes
            assert item in remote.routes


class TestFromPartial:
    """Tests for LarderConfig.from_partial overlays."""

    def test_empty_data_keeps_base(self) -> None:
        base = LarderConfig.default()
        assert LarderConfig.from_partial(base, {}) == base

    def test_overrides_only_given_fields(self) -> None:
        base = LarderConfig.default()
        config = LarderConfig.from_partial(base, {"sync": {"policy": "absent"}})

        assert config.sync.policy == "absent"
        assert config.sync.max_workers == base.sync.max_workers
        assert config.store == base.store
        assert config.remote == base.remote

    def test_table_values_replace_whole_table(self) -> None:
        """A [remote.routes] table replaces the default routes."""
        config = LarderConfig.from_partial(
            LarderConfig.default(),
            {"remote": {"routes": {"todo": "/todos/{id}"}}},
        )
        assert config.remote.routes == {"todo": "/todos/{id}"}

    def test_overlays_stack(self) -> None:
        """Later overlays win over earlier ones."""
        first = LarderConfig.from_partial(
            LarderConfig.default(), {"sync": {"policy": "absent", "max_workers": 2}}
        )
        second = LarderConfig.from_partial(first, {"sync": {"policy": "always"}})

        assert second.sync.policy == "always"
        assert second.sync.max_workers == 2

    def test_unknown_option_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown option"):
            LarderConfig.from_partial(LarderConfig.default(), {"sync": {"ttl": 5}})

    def test_non_table_section_rejected(self) -> None:
        with pytest.raises(ValueError, match=r"\[store\] must be a table"):
            LarderConfig.from_partial(LarderConfig.default(), {"store": "memory"})

    def test_invalid_value_rejected(self) -> None:
        with pytest.raises(ValueError, match="max_workers"):
            LarderConfig.from_partial(LarderConfig.default(), {"sync": {"max_workers": 0}})

    def test_unknown_sections_ignored(self) -> None:
        """Sections larder does not know about are left alone."""
        config = LarderConfig.from_partial(LarderConfig.default(), {"ui": {"color": True}})
        assert config == LarderConfig.default()
