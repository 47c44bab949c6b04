"""Unit tests for TomlConfigProvider adapter."""

import logging
from pathlib import Path

import pytest

from larder.adapters.config.toml_config_provider import TomlConfigProvider
from larder.domain.config import LarderConfig, SyncConfig


@pytest.fixture
def provider() -> TomlConfigProvider:
    """Create a TomlConfigProvider instance."""
    return TomlConfigProvider()


@pytest.fixture
def larder_dir(tmp_path: Path) -> Path:
    """Empty .larder directory."""
    path = tmp_path / "workspace" / ".larder"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def global_config(isolated_global_config: Path) -> Path:
    """Path of the (isolated) global config, parent directory created."""
    isolated_global_config.parent.mkdir(parents=True, exist_ok=True)
    return isolated_global_config


class TestCascade:
    """Tests for the global -> local config cascade."""

    def test_defaults_without_files(self, provider: TomlConfigProvider, larder_dir: Path) -> None:
        assert provider.load(larder_dir) == LarderConfig.default()

    def test_local_config_applied(self, provider: TomlConfigProvider, larder_dir: Path) -> None:
        (larder_dir / "config.toml").write_text('[store]\nbackend = "memory"\n')

        config = provider.load(larder_dir)

        assert config.store.backend == "memory"
        assert config.sync == SyncConfig()

    def test_global_config_applied(
        self, provider: TomlConfigProvider, larder_dir: Path, global_config: Path
    ) -> None:
        global_config.write_text('[remote]\nbase_url = "https://global.test"\n')

        assert provider.load(larder_dir).remote.base_url == "https://global.test"

    def test_local_overrides_global_per_key(
        self, provider: TomlConfigProvider, larder_dir: Path, global_config: Path
    ) -> None:
        global_config.write_text('[sync]\npolicy = "absent"\nmax_workers = 8\n')
        (larder_dir / "config.toml").write_text('[sync]\npolicy = "always"\n')

        config = provider.load(larder_dir)

        assert config.sync.policy == "always"
        assert config.sync.max_workers == 8


class TestInvalidConfig:
    """Tests for graceful handling of broken config files."""

    def test_malformed_local_ignored(
        self, provider: TomlConfigProvider, larder_dir: Path, global_config: Path, caplog
    ) -> None:
        global_config.write_text("[sync]\nmax_workers = 2\n")
        (larder_dir / "config.toml").write_text("[sync\n")

        with caplog.at_level(logging.WARNING, logger="larder"):
            config = provider.load(larder_dir)

        assert config.sync.max_workers == 2
        assert "Failed to parse local config" in caplog.text

    def test_malformed_global_ignored(
        self, provider: TomlConfigProvider, larder_dir: Path, global_config: Path, caplog
    ) -> None:
        global_config.write_text("not = [valid")
        (larder_dir / "config.toml").write_text("[sync]\nmax_workers = 3\n")

        with caplog.at_level(logging.WARNING, logger="larder"):
            config = provider.load(larder_dir)

        assert config.sync.max_workers == 3
        assert "Failed to parse global config" in caplog.text

    def test_invalid_value_ignores_file(
        self, provider: TomlConfigProvider, larder_dir: Path, caplog
    ) -> None:
        (larder_dir / "config.toml").write_text("[sync]\nmax_workers = 0\n")

        with caplog.at_level(logging.WARNING, logger="larder"):
            config = provider.load(larder_dir)

        assert config == LarderConfig.default()
        assert "max_workers" in caplog.text

    def test_unknown_option_ignores_file(
        self, provider: TomlConfigProvider, larder_dir: Path, caplog
    ) -> None:
        (larder_dir / "config.toml").write_text('[store]\nbackend = "memory"\nengine = "x"\n')

        with caplog.at_level(logging.WARNING, logger="larder"):
            config = provider.load(larder_dir)

        assert config.store.backend == "sqlite"
        assert "Unknown option" in caplog.text

    def test_bad_policy_resets_sync_section(
        self, provider: TomlConfigProvider, larder_dir: Path, caplog
    ) -> None:
        (larder_dir / "config.toml").write_text(
            '[sync]\npolicy = "sometimes"\n\n[store]\nbackend = "memory"\n'
        )

        with caplog.at_level(logging.WARNING, logger="larder"):
            config = provider.load(larder_dir)

        assert config.sync == SyncConfig()
        assert config.store.backend == "memory"
        assert "Invalid freshness policy" in caplog.text

    def test_bad_rule_resets_sync_section(
        self, provider: TomlConfigProvider, larder_dir: Path
    ) -> None:
        (larder_dir / "config.toml").write_text('[sync.rules]\n"post:" = "stale:-1"\n')

        assert provider.load(larder_dir).sync == SyncConfig()
