"""Unit tests for freshness policies and policy selection."""

import pytest

from larder.core.sync.freshness import (
    AlwaysFetch,
    FetchIfAbsent,
    FetchIfStale,
    PrefixPolicySelector,
    parse_policy,
)
from larder.domain.entities import CacheMeta, Record
from larder.domain.exceptions import PolicyViolation

CACHED = Record(key="post:1", data={"id": 1})


class TestFetchIfAbsent:
    """Tests for FetchIfAbsent."""

    def test_fetches_when_absent(self) -> None:
        assert FetchIfAbsent().should_fetch(None, CacheMeta(), now=0) is True

    def test_serves_cache_when_present(self) -> None:
        """Presence alone suffices, even if the key was never refreshed."""
        assert FetchIfAbsent().should_fetch(CACHED, CacheMeta(), now=0) is False


class TestFetchIfStale:
    """Tests for FetchIfStale."""

    def test_fetches_when_absent(self) -> None:
        meta = CacheMeta(last_refresh=100)
        assert FetchIfStale(60).should_fetch(None, meta, now=101) is True

    def test_fetches_when_never_refreshed(self) -> None:
        """A cached value without a recorded refresh counts as stale."""
        assert FetchIfStale(60).should_fetch(CACHED, CacheMeta(), now=0) is True

    def test_fresh_within_ttl(self) -> None:
        meta = CacheMeta(last_refresh=100)
        assert FetchIfStale(60).should_fetch(CACHED, meta, now=159) is False

    def test_stale_at_ttl_boundary(self) -> None:
        meta = CacheMeta(last_refresh=100)
        assert FetchIfStale(60).should_fetch(CACHED, meta, now=160) is True

    def test_zero_ttl_always_stale(self) -> None:
        meta = CacheMeta(last_refresh=100)
        assert FetchIfStale(0).should_fetch(CACHED, meta, now=100) is True

    def test_negative_ttl_rejected_at_construction(self) -> None:
        with pytest.raises(PolicyViolation) as exc_info:
            FetchIfStale(-1)
        assert exc_info.value.hint is not None

    def test_nan_ttl_rejected_at_construction(self) -> None:
        with pytest.raises(PolicyViolation, match="NaN"):
            FetchIfStale(float("nan"))

    def test_infinite_ttl_fetches_once(self) -> None:
        policy = FetchIfStale(float("inf"))
        assert policy.should_fetch(CACHED, CacheMeta(), now=0) is True
        assert policy.should_fetch(CACHED, CacheMeta(last_refresh=0), now=1e12) is False


class TestAlwaysFetch:
    """Tests for AlwaysFetch."""

    def test_always_fetches(self) -> None:
        meta = CacheMeta(last_refresh=100)
        assert AlwaysFetch().should_fetch(CACHED, meta, now=100) is True


class TestParsePolicy:
    """Tests for parse_policy."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("absent", FetchIfAbsent()),
            ("always", AlwaysFetch()),
            ("stale:60", FetchIfStale(60)),
            ("stale:0.5", FetchIfStale(0.5)),
            ("  STALE:10 ", FetchIfStale(10)),
        ],
    )
    def test_valid_policy_strings(self, value: str, expected: object) -> None:
        assert parse_policy(value) == expected

    @pytest.mark.parametrize("value", ["sometimes", "absent:5", "", "fresh:1"])
    def test_unknown_policies_rejected(self, value: str) -> None:
        with pytest.raises(PolicyViolation, match="Unknown freshness policy"):
            parse_policy(value)

    @pytest.mark.parametrize("value", ["stale:", "stale:soon", "stale:nan", "stale:NaN"])
    def test_bad_ttl_rejected(self, value: str) -> None:
        with pytest.raises(PolicyViolation, match="Invalid ttl"):
            parse_policy(value)

    def test_negative_ttl_rejected(self) -> None:
        with pytest.raises(PolicyViolation, match="negative"):
            parse_policy("stale:-5")


class TestPrefixPolicySelector:
    """Tests for PrefixPolicySelector."""

    def test_longest_prefix_wins(self) -> None:
        selector = PrefixPolicySelector(
            {"post:": FetchIfStale(60), "post:draft:": AlwaysFetch()},
            default=FetchIfAbsent(),
        )
        assert selector("post:draft:3") == AlwaysFetch()
        assert selector("post:3") == FetchIfStale(60)

    def test_default_for_unmatched_keys(self) -> None:
        selector = PrefixPolicySelector({"post:": AlwaysFetch()}, default=FetchIfAbsent())
        assert selector("user:1") == FetchIfAbsent()

    def test_default_for_non_string_keys(self) -> None:
        selector = PrefixPolicySelector({"post:": AlwaysFetch()}, default=FetchIfAbsent())
        assert selector(("post:", 1)) == FetchIfAbsent()

    def test_empty_prefix_rejected(self) -> None:
        with pytest.raises(PolicyViolation, match="prefixes cannot be empty"):
            PrefixPolicySelector({"": AlwaysFetch()}, default=FetchIfAbsent())

    def test_from_config(self) -> None:
        selector = PrefixPolicySelector.from_config({"user:": "stale:300"}, "absent")
        assert selector("user:1") == FetchIfStale(300)
        assert selector("post:1") == FetchIfAbsent()

    def test_from_config_rejects_bad_rule(self) -> None:
        with pytest.raises(PolicyViolation):
            PrefixPolicySelector.from_config({"user:": "later"}, "absent")
