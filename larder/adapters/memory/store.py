"""In-memory adapter implementing the LocalStore protocol.

Keeps records for the lifetime of the process. Useful for tests, for
caches that do not need to survive a restart, and as the "memory" store
backend.
"""

import threading
from collections.abc import Callable, Hashable, Mapping
from typing import Generic, TypeVar

from larder.adapters.listeners import KeyListeners

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class InMemoryStore(Generic[K, T]):
    """Dict-backed LocalStore.

    Args:
        initial: Optional records to pre-populate the store with.
    """

    def __init__(self, initial: Mapping[K, T] | None = None) -> None:
        self._records: dict[K, T] = dict(initial or {})
        self._lock = threading.Lock()
        self._listeners = KeyListeners()

    def read(self, key: K) -> T | None:
        with self._lock:
            return self._records.get(key)

    def write(self, key: K, record: T) -> None:
        with self._lock:
            self._records[key] = record
        self._listeners.notify(key, record)

    def write_many(self, records: Mapping[K, T]) -> None:
        batch = dict(records)
        with self._lock:
            self._records.update(batch)
        for key, record in batch.items():
            self._listeners.notify(key, record)

    def subscribe(
        self, key: K, callback: Callable[[T | None], None]
    ) -> Callable[[], None]:
        # Register first so a concurrent write is never missed
        cancel = self._listeners.add(key, callback)
        try:
            current = self.read(key)
        except Exception:
            cancel()
            raise
        callback(current)
        return cancel

    def keys(self) -> list[K]:
        """Return the keys currently stored."""
        with self._lock:
            return list(self._records)

    def subscriber_count(self, key: K) -> int:
        """Number of live subscriptions on key."""
        return self._listeners.count(key)
