"""Live value streams backed by the local store.

A ResultStream is the single logical value-over-time of one key. All
consumers of the key share it: the first subscriber opens one upstream
LocalStore subscription, later subscribers attach to it and receive the
current store value immediately, and the upstream subscription is released
when the last subscriber closes.

Values only ever come from the store. The coordinator writes fetched records
to the store and the store's own subscription re-emits them here.

Consumers hold a Subscription, which buffers emitted values in a thread-safe
queue and can be read with get(), iterated, or drained through an on_value
callback.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable, Hashable, Iterator
from typing import Generic, TypeVar

from larder.domain.entities import FetchOutcome
from larder.domain.exceptions import StoreError
from larder.ports.store import LocalStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


class SubscriptionClosed(Exception):
    """Raised by Subscription.get() once the subscription is closed."""

    pass


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


class Subscription(Generic[T]):
    """One consumer's live handle on a stream.

    Created by ResultStream.subscribe() or ErrorChannel.subscribe(),
    invalidated by close(). Closing a subscription only removes this
    consumer's interest; it never cancels a fetch shared with others.

    Example:
        with coordinator.observe("post:1") as sub:
            first = sub.get(timeout=1.0)
            for value in sub:
                render(value)
    """

    def __init__(
        self,
        on_close: Callable[[Subscription[T]], None],
        on_value: Callable[[T], None] | None = None,
    ) -> None:
        self._on_close = on_close
        self._on_value = on_value
        self._queue: queue.SimpleQueue[object] = queue.SimpleQueue()
        self._lock = threading.Lock()
        self._closed = False
        self._error: BaseException | None = None
        self._latest: T | None = None

    @property
    def closed(self) -> bool:
        """True once close() was called or the stream failed."""
        return self._closed or self._error is not None

    @property
    def latest(self) -> T | None:
        """Most recent value delivered to this subscription."""
        return self._latest

    @property
    def error(self) -> BaseException | None:
        """Terminal error of this subscription, if it failed."""
        return self._error

    def _push(self, value: T) -> None:
        with self._lock:
            if self.closed:
                return
            self._latest = value
            self._queue.put(value)
        if self._on_value is not None:
            # A failing consumer must not stop delivery to the others
            try:
                self._on_value(value)
            except Exception:
                logger.exception("Subscriber callback failed for value %r", value)

    def _fail(self, error: BaseException) -> None:
        with self._lock:
            if self.closed:
                return
            self._error = error
            self._queue.put(_Failure(error))

    def get(self, timeout: float | None = None) -> T:
        """Return the next emitted value, blocking until one arrives.

        Args:
            timeout: Seconds to wait, or None to wait forever.

        Returns:
            The next value (None means the key is absent from the store).

        Raises:
            TimeoutError: If no value arrives within timeout.
            StoreError: If the stream failed because the store could not be read.
            SubscriptionClosed: If the subscription is closed.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError(f"No value emitted within {timeout}s") from None

        if item is _CLOSED:
            # Keep the sentinel so later calls fail the same way
            self._queue.put(_CLOSED)
            raise SubscriptionClosed("Subscription is closed")
        if isinstance(item, _Failure):
            self._queue.put(item)
            raise item.error
        return item  # type: ignore[return-value]

    def wait_for(
        self,
        predicate: Callable[[T], bool],
        timeout: float | None = None,
    ) -> T:
        """Return the first emitted value matching predicate.

        Values already queued are checked first, in emission order.

        Raises:
            TimeoutError: If no matching value arrives within timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            value = self.get(timeout=remaining)
            if predicate(value):
                return value

    def __iter__(self) -> Iterator[T]:
        """Yield emitted values until the subscription is closed.

        Raises:
            StoreError: If the stream fails while iterating.
        """
        while True:
            try:
                yield self.get()
            except SubscriptionClosed:
                return

    def close(self) -> None:
        """Stop receiving values. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._queue.put(_CLOSED)
        self._on_close(self)

    def __enter__(self) -> Subscription[T]:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> bool:
        self.close()
        return False


class _Broadcast(Generic[T]):
    """Fan-out of published values to the current subscribers."""

    def __init__(self) -> None:
        # Reentrant: store callbacks may fire while subscribe() holds the lock
        self._lock = threading.RLock()
        self._subscribers: list[Subscription[T]] = []

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def _publish(self, value: T) -> None:
        # Delivered under the lock so every subscriber sees the same order
        with self._lock:
            for subscription in list(self._subscribers):
                subscription._push(value)

    def _remove(self, subscription: Subscription[T]) -> None:
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)


class ResultStream(_Broadcast[T]):
    """Shared, replay-latest stream of one key's store value.

    Emitted values are the store's value for the key, None while the key
    is absent.

    Args:
        key: The key this stream follows.
        store: Local store providing reads and change subscriptions.
    """

    def __init__(self, key: Hashable, store: LocalStore) -> None:
        super().__init__()
        self.key = key
        self._store = store
        self._cancel_upstream: Callable[[], None] | None = None
        self._latest: T | None = None

    @property
    def latest(self) -> T | None:
        """Last value received from the store."""
        return self._latest

    @property
    def is_connected(self) -> bool:
        """True while the upstream store subscription is open."""
        return self._cancel_upstream is not None

    def subscribe(self, on_value: Callable[[T], None] | None = None) -> Subscription[T]:
        """Attach a new consumer.

        The consumer receives the key's current store value before this
        method returns, then every later value. If the store cannot be read,
        the returned subscription is already failed with a StoreError.

        Args:
            on_value: Optional callback invoked with every delivered value.

        Returns:
            The consumer's subscription.
        """
        subscription: Subscription[T] = Subscription(self._unsubscribe, on_value)
        with self._lock:
            self._subscribers.append(subscription)
            try:
                if self._cancel_upstream is None:
                    # Upstream emits the current value synchronously on subscribe
                    cancel = self._store.subscribe(self.key, self._on_store_value)
                    if subscription.error is not None:
                        cancel()
                    else:
                        self._cancel_upstream = cancel
                else:
                    # Read at subscribe time, never replay a cached snapshot
                    value = self._store.read(self.key)
                    self._latest = value
                    subscription._push(value)
            except StoreError as e:
                self._fail_subscriber(subscription, e)
            except Exception as e:
                error = StoreError(f"Failed to read {self.key!r} from the local store: {e}")
                error.__cause__ = e
                self._fail_subscriber(subscription, error)
        return subscription

    def _fail_subscriber(self, subscription: Subscription[T], error: StoreError) -> None:
        logger.error("Store read failed for %r: %s", self.key, error)
        self._subscribers.remove(subscription)
        subscription._fail(error)

    def _on_store_value(self, _value: T) -> None:
        # Read back under the stream lock: notifications from concurrent
        # writers may arrive out of order, the store's current value may not
        with self._lock:
            if self._cancel_upstream is None and not self._subscribers:
                return
            try:
                value = self._store.read(self.key)
            except Exception as e:
                self._fail_all(e)
                return
            self._latest = value
            self._publish(value)

    def _fail_all(self, cause: Exception) -> None:
        if isinstance(cause, StoreError):
            error = cause
        else:
            error = StoreError(f"Failed to read {self.key!r} from the local store: {cause}")
            error.__cause__ = cause
        logger.error("Store read failed for %r, ending stream: %s", self.key, cause)
        subscribers, self._subscribers = self._subscribers, []
        for subscription in subscribers:
            subscription._fail(error)
        if self._cancel_upstream is not None:
            cancel, self._cancel_upstream = self._cancel_upstream, None
            cancel()

    def _unsubscribe(self, subscription: Subscription[T]) -> None:
        with self._lock:
            self._remove(subscription)
            if not self._subscribers and self._cancel_upstream is not None:
                cancel, self._cancel_upstream = self._cancel_upstream, None
                cancel()
                logger.debug("Released store subscription for %r", self.key)


class ErrorChannel(_Broadcast[FetchOutcome]):
    """Side channel of failed fetch outcomes for one key.

    Unlike ResultStream there is no replay: subscribers only see failures
    published after they subscribed.
    """

    def __init__(self, key: Hashable) -> None:
        super().__init__()
        self.key = key

    def subscribe(
        self, on_value: Callable[[FetchOutcome], None] | None = None
    ) -> Subscription[FetchOutcome]:
        """Attach a consumer of future failures."""
        subscription: Subscription[FetchOutcome] = Subscription(self._remove, on_value)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def publish(self, outcome: FetchOutcome) -> None:
        """Deliver a failed outcome to every current subscriber."""
        self._publish(outcome)
