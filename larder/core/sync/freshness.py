"""Freshness policies deciding when a cached record needs a remote refresh.

Policies are pure: given the cached record (or None), the key's CacheMeta and
the current time, should_fetch() always returns the same answer. Time is
passed in, never read from a clock, so the coordinator stays testable with a
fake clock.
"""

import math
from collections.abc import Hashable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from larder.domain.entities import CacheMeta
from larder.domain.exceptions import PolicyViolation


class FreshnessPolicy(Protocol):
    """Decides whether a remote fetch is warranted for a key."""

    def should_fetch(self, cached: Any | None, meta: CacheMeta, now: float) -> bool:
        """Return True if the cached value should be refreshed.

        Args:
            cached: Current store value for the key, or None if absent.
            meta: Coordinator bookkeeping for the key.
            now: Current clock time in seconds.
        """
        ...


@dataclass(frozen=True)
class FetchIfAbsent:
    """Fetch only when nothing is cached."""

    def should_fetch(self, cached: Any | None, meta: CacheMeta, now: float) -> bool:
        return cached is None


@dataclass(frozen=True)
class FetchIfStale:
    """Fetch when nothing is cached or the last refresh is older than ttl.

    A key that was never refreshed by this process (or was invalidated) is
    treated as stale even if the store holds a value.

    Attributes:
        ttl: Maximum age in seconds of a refresh before it is stale.

    An infinite ttl is allowed: the key is fetched once and then served from
    the cache until invalidated.

    Raises:
        PolicyViolation: If ttl is negative or NaN.
    """

    ttl: float

    def __post_init__(self) -> None:
        if math.isnan(self.ttl):
            raise PolicyViolation(
                "Invalid ttl: NaN is not a number of seconds",
                hint="Write the ttl in seconds, e.g. 'stale:60'",
            )
        if self.ttl < 0:
            raise PolicyViolation(
                f"ttl cannot be negative, got {self.ttl}",
                hint="Use a ttl of 0 to refresh on every observe",
            )

    def should_fetch(self, cached: Any | None, meta: CacheMeta, now: float) -> bool:
        if cached is None or meta.last_refresh is None:
            return True
        return now - meta.last_refresh >= self.ttl


@dataclass(frozen=True)
class AlwaysFetch:
    """Fetch on every evaluation."""

    def should_fetch(self, cached: Any | None, meta: CacheMeta, now: float) -> bool:
        return True


def parse_policy(value: str) -> FreshnessPolicy:
    """Build a policy from its config string.

    Accepted forms: "absent", "always", "stale:<seconds>".

    Args:
        value: Policy string, e.g. "stale:60".

    Returns:
        The matching policy.

    Raises:
        PolicyViolation: If the string is malformed or the ttl is invalid.
    """
    name, _, arg = value.strip().partition(":")
    name = name.lower()

    if name == "absent" and not arg:
        return FetchIfAbsent()
    if name == "always" and not arg:
        return AlwaysFetch()
    if name == "stale":
        try:
            ttl = float(arg)
        except ValueError as e:
            raise PolicyViolation(
                f"Invalid ttl in policy {value!r}",
                hint="Write the ttl in seconds, e.g. 'stale:60'",
            ) from e
        return FetchIfStale(ttl)

    raise PolicyViolation(
        f"Unknown freshness policy {value!r}",
        hint="Use 'absent', 'always' or 'stale:<seconds>'",
    )


class PrefixPolicySelector:
    """Selects a freshness policy per key class by string key prefix.

    The longest matching prefix wins; keys matching no rule (or that are not
    strings) use the default policy.

    Example:
        selector = PrefixPolicySelector(
            {"post:": FetchIfStale(60), "config": FetchIfAbsent()},
            default=FetchIfStale(300),
        )
        selector("post:1")  # FetchIfStale(ttl=60)
    """

    def __init__(
        self,
        rules: Mapping[str, FreshnessPolicy],
        default: FreshnessPolicy,
    ) -> None:
        if any(not prefix for prefix in rules):
            raise PolicyViolation("Policy rule prefixes cannot be empty")
        # Longest prefix first so "post:draft:" beats "post:"
        self._rules = sorted(rules.items(), key=lambda item: len(item[0]), reverse=True)
        self._default = default

    @classmethod
    def from_config(cls, rules: Mapping[str, str], default: str) -> "PrefixPolicySelector":
        """Build a selector from config policy strings.

        Raises:
            PolicyViolation: If any policy string is invalid.
        """
        return cls(
            {prefix: parse_policy(value) for prefix, value in rules.items()},
            default=parse_policy(default),
        )

    def __call__(self, key: Hashable) -> FreshnessPolicy:
        if isinstance(key, str):
            for prefix, policy in self._rules:
                if key.startswith(prefix):
                    return policy
        return self._default
