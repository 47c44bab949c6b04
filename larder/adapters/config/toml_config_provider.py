"""TOML-based configuration provider.

Loads configuration from .larder/config.toml with global config fallback.

Config loading priority (highest to lowest):
1. Local: .larder/config.toml (workspace-specific)
2. Global: ~/.config/larder/config.toml (user defaults)
3. Built-in defaults
"""

import logging
from dataclasses import replace
from pathlib import Path

from larder.core.sync.freshness import PrefixPolicySelector
from larder.domain.config import LarderConfig, SyncConfig
from larder.domain.exceptions import PolicyViolation
from larder.shared.config_io import get_global_config_path, load_config_data

logger = logging.getLogger(__name__)


class TomlConfigProvider:
    """Configuration provider that loads from TOML files.

    Implements config cascade:
    1. Load global config (~/.config/larder/config.toml) if present
    2. Load local config (.larder/config.toml) if present
    3. Local values override global values (section-level merge)
    4. Missing values fall back to built-in defaults

    A file that cannot be parsed or validated is skipped with a warning;
    policy strings that do not parse reset the [sync] section to defaults.
    """

    def load(self, larder_dir: Path) -> LarderConfig:
        """Load configuration with global fallback.

        Args:
            larder_dir: Path to .larder directory containing config.toml

        Returns:
            LarderConfig instance with merged global/local values or defaults
        """
        config = LarderConfig.default()
        config = self._apply(config, get_global_config_path(), "global")
        config = self._apply(config, larder_dir / "config.toml", "local")

        # Policy strings are only parsed by the sync core, so check them here
        try:
            PrefixPolicySelector.from_config(config.sync.rules, config.sync.policy)
        except PolicyViolation as e:
            logger.warning(
                "Invalid freshness policy configuration: %s. Using default [sync] settings.",
                e,
            )
            return replace(config, sync=SyncConfig())

        return config

    @staticmethod
    def _apply(config: LarderConfig, path: Path, label: str) -> LarderConfig:
        if not path.exists():
            return config
        try:
            data = load_config_data(path)
            merged = LarderConfig.from_partial(config, data)
        except (FileNotFoundError, ValueError) as e:
            logger.warning(
                "Failed to parse %s config at %s: %s. Ignoring it.", label, path, e
            )
            return config
        logger.debug("Loaded %s config from %s", label, path)
        return merged
