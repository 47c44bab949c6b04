"""Remote source port interface.

Defines the fetch operation the sync coordinator calls to refresh a key.
Implementations should be in adapters/ layer.
"""

from collections.abc import Hashable
from typing import Protocol, TypeVar

K = TypeVar("K", bound=Hashable, contravariant=True)
T = TypeVar("T", covariant=True)


class RemoteSource(Protocol[K, T]):
    """Source of fresh records, typically a network service."""

    def fetch(self, key: K) -> T:
        """Fetch a fresh record for a key.

        May block. No retries are expected: the coordinator re-attempts only
        on the next policy-triggered observe or explicit refresh.

        Args:
            key: The record key.

        Returns:
            The fresh record.

        Raises:
            RemoteError: If the record cannot be fetched.
        """
        ...
