"""HTTP adapters for larder remote sources."""

from .json_source import HttpJsonSource, expand_collection

__all__ = ["HttpJsonSource", "expand_collection"]
