"""Configuration provider port.

The CLI resolves a workspace's LarderConfig through this interface, so the
cascade of config files stays an adapter concern.
"""

from pathlib import Path
from typing import Protocol

from larder.domain.config import LarderConfig


class ConfigProvider(Protocol):
    """Produces the effective configuration of a workspace."""

    def load(self, larder_dir: Path) -> LarderConfig:
        """Resolve the configuration for a workspace.

        Args:
            larder_dir: The workspace's .larder directory.

        Returns:
            Validated LarderConfig. A missing or broken file never raises;
            the values it would have set keep their previous layer's value.
        """
        ...
