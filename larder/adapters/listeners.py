"""Per-key change listeners shared by the store adapters."""

import logging
import threading
from collections.abc import Callable, Hashable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class KeyListeners:
    """Registry of change callbacks keyed by record key.

    Callbacks are invoked outside the registry lock, so a callback may
    subscribe or cancel (including itself) while being notified.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[Hashable, list[tuple[object, Listener]]] = {}

    def add(self, key: Hashable, callback: Listener) -> Callable[[], None]:
        """Register callback for key.

        Returns:
            Function removing the registration. Safe to call twice.
        """
        token = object()
        with self._lock:
            self._listeners.setdefault(key, []).append((token, callback))

        def cancel() -> None:
            with self._lock:
                entries = self._listeners.get(key)
                if entries is None:
                    return
                entries[:] = [entry for entry in entries if entry[0] is not token]
                if not entries:
                    del self._listeners[key]

        return cancel

    def count(self, key: Hashable) -> int:
        """Number of callbacks registered for key."""
        with self._lock:
            return len(self._listeners.get(key, ()))

    def notify(self, key: Hashable, value: Any) -> None:
        """Invoke every callback registered for key with value.

        A failing callback is logged and does not prevent the others from
        being notified: the write that triggered it has already succeeded.
        """
        with self._lock:
            callbacks = [callback for _, callback in self._listeners.get(key, ())]
        for callback in callbacks:
            try:
                callback(value)
            except Exception:
                logger.exception("Change listener for %r failed", key)
