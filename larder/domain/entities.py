"""Domain entities and value objects.

Core domain models representing the business concepts of larder.
These are pure Python dataclasses with no dependencies on infrastructure.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Generic, TypeVar

import blake3

T = TypeVar("T")


class OutcomeKind(str, Enum):
    """Kind of result produced by a remote fetch attempt."""

    FRESH = "fresh"  # Remote returned a record and it was written to the store
    FAILED = "failed"  # Remote or store failed; cache left untouched
    SKIPPED = "skipped"  # Fetch suppressed by the freshness policy


class FetchErrorType(str, Enum):
    """Classification of fetch errors.

    Allows callers to distinguish between different failure modes and respond
    appropriately (e.g., show an offline banner vs. report a bug).
    """

    NONE = "none"  # No error occurred
    NETWORK_ERROR = "network_error"  # Connection, timeout, DNS
    PROTOCOL_ERROR = "protocol_error"  # Unexpected status from the remote
    DECODE_ERROR = "decode_error"  # Payload could not be decoded
    STORE_ERROR = "store_error"  # Local store read/write failed
    UNKNOWN = "unknown"  # Unclassified error


@dataclass(frozen=True)
class Record:
    """A cached domain value.

    Records are immutable: the payload is exposed as a read-only mapping and
    updates produce new instances via with_data().

    Attributes:
        key: Key under which the record is stored (e.g., "post:1").
        data: JSON-compatible payload.
    """

    key: str
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate the key and freeze the payload."""
        if not self.key:
            raise ValueError("key cannot be empty")
        if not isinstance(self.data, MappingProxyType):
            object.__setattr__(self, "data", MappingProxyType(dict(self.data)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return self.key == other.key and dict(self.data) == dict(other.data)

    def __hash__(self) -> int:
        return hash((self.key, self.content_hash))

    def with_data(self, **changes: Any) -> Record:
        """Return a new record with the given payload fields replaced."""
        return Record(key=self.key, data={**self.data, **changes})

    def to_json(self) -> str:
        """Encode the payload as canonical JSON (sorted keys, no spaces)."""
        return json.dumps(dict(self.data), sort_keys=True, separators=(",", ":"))

    @property
    def content_hash(self) -> str:
        """blake3 hash of the canonical JSON payload."""
        return blake3.blake3(self.to_json().encode("utf-8")).hexdigest()

    @classmethod
    def from_json(cls, key: str, payload: str) -> Record:
        """Decode a record from its JSON payload.

        Raises:
            ValueError: If the payload is not a JSON object.
        """
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError(f"Record payload for {key!r} must be a JSON object")
        return cls(key=key, data=data)


@dataclass(frozen=True)
class CacheMeta:
    """Per-key bookkeeping kept by the sync coordinator.

    Never persisted; a new process starts with empty metadata for every key.

    Attributes:
        last_refresh: Clock time of the last successful store write, or None.
        error: Cause of the last failed fetch, cleared by the next success.
        in_flight: True while a remote fetch for the key is running.
    """

    last_refresh: float | None = None
    error: BaseException | None = None
    in_flight: bool = False


@dataclass(frozen=True)
class FetchOutcome(Generic[T]):
    """Result of a remote fetch attempt.

    Attributes:
        kind: FRESH, FAILED or SKIPPED.
        record: The record as written to the store (FRESH only).
        error: Failure cause (FAILED only).
        error_type: Classification of the failure for programmatic handling.
    """

    kind: OutcomeKind
    record: T | None = None
    error: BaseException | None = None
    error_type: FetchErrorType = FetchErrorType.NONE

    @classmethod
    def fresh(cls, record: T) -> FetchOutcome[T]:
        return cls(kind=OutcomeKind.FRESH, record=record)

    @classmethod
    def failed(
        cls,
        error: BaseException,
        error_type: FetchErrorType = FetchErrorType.UNKNOWN,
    ) -> FetchOutcome[T]:
        return cls(kind=OutcomeKind.FAILED, error=error, error_type=error_type)

    @classmethod
    def skipped(cls) -> FetchOutcome[T]:
        return cls(kind=OutcomeKind.SKIPPED)

    @property
    def is_fresh(self) -> bool:
        return self.kind is OutcomeKind.FRESH

    @property
    def is_failed(self) -> bool:
        return self.kind is OutcomeKind.FAILED
