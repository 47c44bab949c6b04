"""Sync coordinator reconciling the local store with the remote source.

The coordinator decides per key whether to serve the cache only or the cache
plus a refresh, guarantees that at most one remote fetch per key is in flight,
and writes fetched records back to the store. Consumers never receive a
remote response directly: they follow the key's ResultStream, which is fed by
the store's own subscription.

Concurrency model:
    Every key has its own lock guarding its CacheMeta and in-flight future.
    Policy evaluation and the in-flight transition happen under that lock;
    remote fetches run on the executor without it. Store writes of a key
    happen under the key's separate write lock, and every fetch carries a
    sequence number so an expanded write never lands after a newer fetch of
    the same key. Apart from the registry lock, which only guards the
    key -> state lookup, the only lock shared across keys serializes
    multi-key (expanded) writes against each other.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
import threading
import time
from collections.abc import Callable, Hashable, Mapping
from concurrent.futures import Executor, Future, InvalidStateError, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Generic, Self, TypeVar

from larder.core.sync.errors import classify_fetch_error
from larder.core.sync.freshness import FreshnessPolicy
from larder.core.sync.stream import ErrorChannel, ResultStream, Subscription
from larder.domain.entities import CacheMeta, FetchOutcome
from larder.domain.exceptions import RemoteError, StoreError
from larder.ports.clock import Clock
from larder.ports.remote import RemoteSource
from larder.ports.store import LocalStore

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")

PolicySelector = Callable[[K], FreshnessPolicy]
Expander = Callable[[K, T], Mapping[K, T]]


@dataclass
class _KeyState(Generic[T]):
    """Mutable per-key state.

    meta and future are only touched while holding lock; written only while
    holding write_lock.
    """

    stream: ResultStream[T]
    errors: ErrorChannel
    # Reentrant so an inline executor can complete a fetch inside submit()
    lock: threading.RLock = field(default_factory=threading.RLock)
    meta: CacheMeta = field(default_factory=CacheMeta)
    future: Future[FetchOutcome[T]] | None = None
    # Fetch sequence numbers: latest started, latest finished, and the
    # fetch whose data the store holds. started != finished while in flight.
    started: int = 0
    finished: int = 0
    written: int = 0
    # Held around every store write of the key
    write_lock: threading.RLock = field(default_factory=threading.RLock)


class SyncCoordinator(Generic[K, T]):
    """Coordinates reads, freshness checks, remote fetches and write-back.

    Args:
        store: Local store that owns the durable copy of every record.
        remote: Remote source providing fresh records.
        policy: A freshness policy for every key, or a callable selecting
            the policy for a key (e.g., PrefixPolicySelector).
        clock: Time source for freshness decisions. Defaults to time.time.
        executor: Executor running fetches. If omitted, the coordinator
            owns a ThreadPoolExecutor and shuts it down in close().
        max_workers: Worker count of the owned executor.
        expand: Optional function returning extra key -> record entries
            to write together with a fetched record (e.g., the items of a
            fetched list). They are written in one bulk store write.

    Example:
        with SyncCoordinator(store, remote, FetchIfStale(60)) as coordinator:
            with coordinator.observe("post:1") as sub:
                post = sub.wait_for(lambda value: value is not None, timeout=5)
    """

    def __init__(
        self,
        store: LocalStore[K, T],
        remote: RemoteSource[K, T],
        policy: FreshnessPolicy | PolicySelector,
        *,
        clock: Clock | None = None,
        executor: Executor | None = None,
        max_workers: int = 4,
        expand: Expander | None = None,
    ) -> None:
        self._store = store
        self._remote = remote
        if hasattr(policy, "should_fetch"):
            self._policy_for: PolicySelector = lambda key: policy  # type: ignore[assignment,return-value]
        else:
            self._policy_for = policy  # type: ignore[assignment]
        self._now = clock.now if clock is not None else time.time
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="larder-fetch"
        )
        self._expand = expand
        self._states: dict[K, _KeyState[T]] = {}
        self._registry_lock = threading.Lock()
        self._expand_lock = threading.Lock()
        self._sequence = itertools.count(1)

    def _state(self, key: K) -> _KeyState[T]:
        with self._registry_lock:
            state = self._states.get(key)
            if state is None:
                state = _KeyState(
                    stream=ResultStream(key, self._store),
                    errors=ErrorChannel(key),
                )
                self._states[key] = state
            return state

    # ------------------------------------------------------------------
    # Consumer API
    # ------------------------------------------------------------------

    def observe(
        self, key: K, on_value: Callable[[T | None], None] | None = None
    ) -> Subscription[T | None]:
        """Follow the live value of a key, refreshing it if it is stale.

        Returns immediately. The subscription already holds the key's current
        store value (None if absent); a refresh, if the policy asks for one,
        runs on the executor and its result reaches the subscription through
        the store.

        Args:
            key: The key to observe.
            on_value: Optional callback invoked with every delivered value.

        Returns:
            Subscription on the key's shared ResultStream. If the store
            cannot be read, the subscription is failed with a StoreError.
        """
        state = self._state(key)
        subscription = state.stream.subscribe(on_value)
        if subscription.error is not None:
            return subscription

        policy = self._policy_for(key)
        with state.lock:
            if state.future is not None:
                logger.debug("Fetch for %r already in flight, attaching", key)
            elif policy.should_fetch(subscription.latest, state.meta, self._now()):
                try:
                    self._start_fetch(key, state)
                except RuntimeError as e:
                    logger.warning("Cannot refresh %r, serving cached value: %s", key, e)
            else:
                logger.debug("Serving %r from cache", key)
        return subscription

    def refresh(self, key: K) -> Future[FetchOutcome[T]]:
        """Start (or join) a remote fetch for a key, ignoring the policy.

        The returned future belongs to this caller alone: cancelling it
        detaches the caller but never aborts the shared fetch.

        Args:
            key: The key to refresh.

        Returns:
            Future resolving to the FetchOutcome of the shared fetch.

        Raises:
            RuntimeError: If the executor no longer accepts work (e.g., after
                close()).
        """
        state = self._state(key)
        with state.lock:
            shared = state.future
            if shared is None:
                shared = self._start_fetch(key, state)
            else:
                logger.debug("Joining in-flight fetch for %r", key)
        return _attach(shared)

    def refresh_if_stale(self, key: K) -> Future[FetchOutcome[T]]:
        """Start (or join) a remote fetch only if the key's policy asks for one.

        Returns:
            Caller-owned future of the shared fetch's outcome, or a future
            already resolved to SKIPPED when the policy suppresses the fetch.

        Raises:
            StoreError: If the key's cached value cannot be read.
            RuntimeError: If the executor no longer accepts work.
        """
        state = self._state(key)
        cached = self._store.read(key)
        policy = self._policy_for(key)
        with state.lock:
            shared = state.future
            if shared is None:
                if not policy.should_fetch(cached, state.meta, self._now()):
                    logger.debug("Policy suppressed fetch of %r", key)
                    skipped: Future[FetchOutcome[T]] = Future()
                    skipped.set_result(FetchOutcome.skipped())
                    return skipped
                shared = self._start_fetch(key, state)
        return _attach(shared)

    def refresh_now(self, key: K, timeout: float | None = None) -> FetchOutcome[T]:
        """Fetch a key now and wait for the outcome.

        Collapses into an in-flight fetch for the same key when there is one.
        The stream of the key is updated as for any other fetch.

        Args:
            key: The key to refresh.
            timeout: Seconds to wait, or None to wait until the fetch ends.

        Returns:
            FRESH with the written record, or FAILED with the cause.

        Raises:
            TimeoutError: If timeout elapses first. The fetch keeps running
                for other callers and for cache write-back.
        """
        caller = self.refresh(key)
        try:
            return caller.result(timeout=timeout)
        except TimeoutError:
            caller.cancel()
            logger.debug("Gave up waiting for %r after %ss", key, timeout)
            raise

    async def refresh_async(self, key: K) -> FetchOutcome[T]:
        """Awaitable form of refresh_now() for asyncio callers.

        Cancelling the awaiting task detaches it from the fetch without
        aborting the fetch.
        """
        return await asyncio.wrap_future(self.refresh(key))

    def pending(self, key: K) -> Future[FetchOutcome[T]] | None:
        """Return a caller-owned future for the key's in-flight fetch.

        Returns:
            Future mirroring the running fetch, or None if none is running.
        """
        state = self._state(key)
        with state.lock:
            if state.future is None:
                return None
            return _attach(state.future)

    def invalidate(self, key: K) -> None:
        """Treat a key as never refreshed, without touching the stored value.

        The next observe() re-evaluates the policy as if the key were stale.
        """
        state = self._state(key)
        with state.lock:
            state.meta = replace(state.meta, last_refresh=None)
        logger.debug("Invalidated %r", key)

    def errors(
        self, key: K, on_value: Callable[[FetchOutcome[T]], None] | None = None
    ) -> Subscription[FetchOutcome[T]]:
        """Subscribe to the failed fetch outcomes of a key."""
        return self._state(key).errors.subscribe(on_value)

    def stream(self, key: K) -> ResultStream[T]:
        """Return the shared ResultStream of a key."""
        return self._state(key).stream

    def meta(self, key: K) -> CacheMeta:
        """Return a snapshot of the key's CacheMeta."""
        state = self._state(key)
        with state.lock:
            return state.meta

    # ------------------------------------------------------------------
    # Fetch pipeline
    # ------------------------------------------------------------------

    def _start_fetch(self, key: K, state: _KeyState[T]) -> Future[FetchOutcome[T]]:
        """Become the fetch owner for key. Caller must hold state.lock.

        Raises:
            RuntimeError: If the executor no longer accepts work.
        """
        seq = next(self._sequence)
        state.started = seq
        logger.debug("Starting remote fetch #%d for %r", seq, key)
        try:
            future = self._executor.submit(self._run_fetch, key, state, seq)
        except RuntimeError:
            state.finished = seq
            raise
        # An inline executor has already completed (and cleared) the fetch
        if not future.done():
            state.future = future
            state.meta = replace(state.meta, in_flight=True)
        return future

    def _run_fetch(self, key: K, state: _KeyState[T], seq: int) -> FetchOutcome[T]:
        outcome: FetchOutcome[T] | None = None
        written: Mapping[K, T] = {}
        try:
            outcome, written = self._fetch_and_store(key, state, seq)
            return outcome
        finally:
            self._complete(key, state, seq, outcome, written)

    def _fetch_and_store(
        self, key: K, state: _KeyState[T], seq: int
    ) -> tuple[FetchOutcome[T], Mapping[K, T]]:
        try:
            record = self._remote.fetch(key)
            extra = self._expand(key, record) if self._expand is not None else {}
        except Exception as e:
            error = _as_error(RemoteError, f"Remote fetch failed for {key!r}", e)
            logger.warning("Remote fetch failed for %r: %s", key, e)
            return FetchOutcome.failed(error, classify_fetch_error(error)), {}

        try:
            written = self._write_back(key, state, seq, record, extra)
        except Exception as e:
            error = _as_error(StoreError, f"Failed to write {key!r} to the local store", e)
            logger.error("Store write failed for %r: %s", key, e)
            return FetchOutcome.failed(error, classify_fetch_error(error)), {}

        logger.debug("Refreshed %r (%d record(s) written)", key, len(written))
        return FetchOutcome.fresh(record), written

    def _write_back(
        self,
        key: K,
        state: _KeyState[T],
        seq: int,
        record: T,
        extra: Mapping[K, T],
    ) -> Mapping[K, T]:
        """Write a fetched record and the expanded entries it still owns.

        Every store write of a key happens under that key's write lock, so
        writes to one key never interleave. An expanded entry is dropped
        when its key has its own fetch in flight, or when the store already
        holds data from a fetch started after this one.

        Returns:
            The entries actually written, keyed by store key.
        """
        others = {other: self._state(other) for other in extra if other != key}
        if not others:
            with state.write_lock:
                self._store.write(key, record)
                state.written = seq
            return {key: record}

        # Multi-key writers take their locks one writer at a time
        with self._expand_lock, contextlib.ExitStack() as locks:
            locks.enter_context(state.write_lock)
            for other_state in others.values():
                locks.enter_context(other_state.write_lock)

            entries = {
                other: extra[other]
                for other, other_state in others.items()
                if not _superseded(other_state, seq)
            }
            if len(entries) < len(others):
                logger.debug(
                    "Dropped %d expanded record(s) of %r superseded by newer fetches",
                    len(others) - len(entries),
                    key,
                )
            entries[key] = record

            if len(entries) == 1:
                self._store.write(key, record)
            else:
                self._store.write_many(entries)
            state.written = seq
            for other in entries.keys() - {key}:
                others[other].written = seq
        return entries

    def _complete(
        self,
        key: K,
        state: _KeyState[T],
        seq: int,
        outcome: FetchOutcome[T] | None,
        written: Mapping[K, T],
    ) -> None:
        now = self._now()
        with state.lock:
            if outcome is not None and outcome.is_fresh:
                state.meta = CacheMeta(last_refresh=now, error=None, in_flight=False)
            elif outcome is not None and outcome.is_failed:
                state.meta = replace(state.meta, error=outcome.error, in_flight=False)
            else:
                state.meta = replace(state.meta, in_flight=False)
            state.finished = seq
            state.future = None

        if outcome is not None and outcome.is_failed:
            state.errors.publish(outcome)

        for other_key in written:
            if other_key != key:
                self._mark_refreshed(other_key, seq, now)

    def _mark_refreshed(self, key: K, seq: int, now: float) -> None:
        state = self._state(key)
        with state.lock:
            # A fetch of the key's own, running or newer, decides its meta
            if state.written == seq and state.started == state.finished:
                state.meta = replace(state.meta, last_refresh=now, error=None)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Shut down the owned executor, waiting for running fetches."""
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> bool:
        self.close()
        return False


def _as_error(
    error_cls: type[RemoteError] | type[StoreError],
    message: str,
    cause: Exception,
) -> RemoteError | StoreError:
    """Return cause if it already is error_cls, else wrap it with cause chained."""
    if isinstance(cause, error_cls):
        return cause
    error = error_cls(f"{message}: {cause}")
    error.__cause__ = cause
    return error


def _superseded(state: _KeyState, seq: int) -> bool:
    """True if fetch seq must not write the key owning state."""
    in_flight = state.started != state.finished
    return in_flight or state.started > seq or state.written > seq


def _attach(shared: Future[FetchOutcome[T]]) -> Future[FetchOutcome[T]]:
    """Return a caller-owned future that mirrors shared."""
    caller: Future[FetchOutcome[T]] = Future()

    def _relay(done: Future[FetchOutcome[T]]) -> None:
        # The caller may cancel between the check and the set
        with contextlib.suppress(InvalidStateError):
            if caller.done():
                return
            if done.cancelled():
                caller.cancel()
                return
            error = done.exception()
            if error is not None:
                caller.set_exception(error)
            else:
                caller.set_result(done.result())

    shared.add_done_callback(_relay)
    return caller
