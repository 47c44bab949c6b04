"""In-memory adapters for larder storage."""

from .store import InMemoryStore

__all__ = ["InMemoryStore"]
