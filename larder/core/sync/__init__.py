"""Sync module coordinating the local store with the remote source.

Contains the SyncCoordinator, the freshness policies it consults, the
ResultStream/Subscription plumbing consumers read from, and fetch error
classification.
"""

from larder.core.sync.coordinator import SyncCoordinator
from larder.core.sync.errors import classify_fetch_error
from larder.core.sync.freshness import (
    AlwaysFetch,
    FetchIfAbsent,
    FetchIfStale,
    FreshnessPolicy,
    PrefixPolicySelector,
    parse_policy,
)
from larder.core.sync.stream import (
    ErrorChannel,
    ResultStream,
    Subscription,
    SubscriptionClosed,
)

__all__ = [
    "AlwaysFetch",
    "ErrorChannel",
    "FetchIfAbsent",
    "FetchIfStale",
    "FreshnessPolicy",
    "PrefixPolicySelector",
    "ResultStream",
    "Subscription",
    "SubscriptionClosed",
    "SyncCoordinator",
    "classify_fetch_error",
    "parse_policy",
]
