"""Unit tests for InMemoryStore and KeyListeners."""

import logging

from larder.adapters.listeners import KeyListeners
from larder.adapters.memory.store import InMemoryStore
from larder.domain.entities import Record


class TestInMemoryStore:
    """Tests for the dict-backed LocalStore."""

    def test_read_missing_returns_none(self, memory_store: InMemoryStore) -> None:
        assert memory_store.read("post:1") is None

    def test_write_then_read(self, memory_store: InMemoryStore, post: Record) -> None:
        memory_store.write("post:1", post)
        assert memory_store.read("post:1") == post

    def test_initial_records(self, post: Record) -> None:
        store = InMemoryStore({"post:1": post})
        assert store.keys() == ["post:1"]

    def test_write_many(self, memory_store: InMemoryStore) -> None:
        a = Record(key="post:1", data={"id": 1})
        b = Record(key="post:2", data={"id": 2})

        memory_store.write_many({"post:1": a, "post:2": b})

        assert memory_store.read("post:1") == a
        assert memory_store.read("post:2") == b

    def test_subscribe_emits_current_value_first(
        self, memory_store: InMemoryStore, post: Record
    ) -> None:
        seen: list[Record | None] = []
        memory_store.subscribe("post:1", seen.append)
        memory_store.write("post:1", post)

        assert seen == [None, post]

    def test_subscribe_only_sees_its_key(self, memory_store: InMemoryStore) -> None:
        seen: list[Record | None] = []
        memory_store.subscribe("post:1", seen.append)

        memory_store.write("post:2", Record(key="post:2", data={}))

        assert seen == [None]

    def test_write_many_notifies_each_key(self, memory_store: InMemoryStore) -> None:
        seen: list[Record | None] = []
        memory_store.subscribe("post:1", seen.append)
        memory_store.subscribe("post:2", seen.append)
        seen.clear()

        a = Record(key="post:1", data={"id": 1})
        b = Record(key="post:2", data={"id": 2})
        memory_store.write_many({"post:1": a, "post:2": b})

        assert seen == [a, b]

    def test_cancel_stops_notifications(self, memory_store: InMemoryStore, post: Record) -> None:
        seen: list[Record | None] = []
        cancel = memory_store.subscribe("post:1", seen.append)

        cancel()
        cancel()
        memory_store.write("post:1", post)

        assert seen == [None]
        assert memory_store.subscriber_count("post:1") == 0


class TestKeyListeners:
    """Tests for the per-key callback registry."""

    def test_notify_calls_registered_callbacks(self) -> None:
        listeners = KeyListeners()
        seen: list[int] = []
        listeners.add("a", seen.append)
        listeners.add("a", lambda value: seen.append(value * 10))

        listeners.notify("a", 1)

        assert seen == [1, 10]
        assert listeners.count("a") == 2

    def test_failing_callback_does_not_block_others(self, caplog) -> None:
        listeners = KeyListeners()
        seen: list[int] = []

        def broken(value: int) -> None:
            raise RuntimeError("listener bug")

        listeners.add("a", broken)
        listeners.add("a", seen.append)

        with caplog.at_level(logging.ERROR, logger="larder"):
            listeners.notify("a", 1)

        assert seen == [1]
        assert "Change listener for 'a' failed" in caplog.text

    def test_callback_may_cancel_itself(self) -> None:
        listeners = KeyListeners()
        seen: list[int] = []
        cancel = None

        def once(value: int) -> None:
            seen.append(value)
            assert cancel is not None
            cancel()

        cancel = listeners.add("a", once)
        listeners.notify("a", 1)
        listeners.notify("a", 2)

        assert seen == [1]
        assert listeners.count("a") == 0
