"""Local store port interface.

Defines the durable key -> record storage the sync coordinator reads from and
writes back to. Implementations should be in adapters/ layer.
"""

from collections.abc import Callable, Hashable, Mapping
from typing import Protocol, TypeVar

K = TypeVar("K", bound=Hashable, contravariant=True)
T = TypeVar("T")


class LocalStore(Protocol[K, T]):
    """Durable key -> record storage with change subscriptions.

    Implementations must be safe for concurrent use across keys.
    """

    def read(self, key: K) -> T | None:
        """Read the current record for a key.

        Args:
            key: The record key.

        Returns:
            The stored record, or None if the key is absent. Absence is a
            valid empty result, not an error.

        Raises:
            StoreError: If the store cannot be read.
        """
        ...

    def write(self, key: K, record: T) -> None:
        """Insert or replace the record for a key.

        Subscribers of the key must be notified once the write is durable.

        Raises:
            StoreError: If the record cannot be durably written.
        """
        ...

    def write_many(self, records: Mapping[K, T]) -> None:
        """Insert or replace several records as one unit.

        Either every record is written or none is. Subscribers of each
        written key are notified after the whole batch is durable.

        Raises:
            StoreError: If the batch cannot be durably written.
        """
        ...

    def subscribe(
        self, key: K, callback: Callable[[T | None], None]
    ) -> Callable[[], None]:
        """Subscribe to the live value of a key.

        The callback is invoked with the current value (None if absent)
        before this method returns, then again after every write to the key.

        Args:
            key: The record key.
            callback: Receives the current value of the key.

        Returns:
            Function that cancels the subscription. Safe to call twice.

        Raises:
            StoreError: If the current value cannot be read.
        """
        ...
