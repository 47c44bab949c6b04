"""Test helper utilities for the larder test suite."""

import threading
from collections.abc import Callable, Mapping
from concurrent.futures import Future
from typing import Any

from larder.adapters.memory.store import InMemoryStore
from larder.domain.entities import Record
from larder.domain.exceptions import StoreError
from tests.helpers.cli_assertions import (
    assert_command_failed,
    assert_command_success,
    assert_error_message,
    assert_files_created,
    assert_output_contains,
    stdout_json,
    stdout_json_lines,
)

__all__ = [
    "FakeClock",
    "FlakyStore",
    "InlineExecutor",
    "ScriptedRemote",
    "assert_command_success",
    "assert_command_failed",
    "assert_output_contains",
    "assert_error_message",
    "assert_files_created",
    "stdout_json",
    "stdout_json_lines",
]


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.time = start

    def now(self) -> float:
        return self.time

    def advance(self, seconds: float) -> None:
        self.time += seconds


class ScriptedRemote:
    """RemoteSource returning scripted responses and counting calls.

    Responses per key are consumed in order; the last one repeats. A
    response that is an exception instance is raised instead of returned.
    When gated, fetch() blocks until release() is called, so tests can
    hold a fetch in flight.
    """

    def __init__(
        self,
        responses: Mapping[str, Any] | None = None,
        *,
        gated: bool = False,
    ) -> None:
        self._responses: dict[str, list[Any]] = {
            key: list(value) if isinstance(value, list) else [value]
            for key, value in (responses or {}).items()
        }
        self._lock = threading.Lock()
        self._gate = threading.Event()
        if not gated:
            self._gate.set()
        self.entered = threading.Event()
        self.calls: list[str] = []

    def release(self) -> None:
        self._gate.set()

    def call_count(self, key: str) -> int:
        with self._lock:
            return self.calls.count(key)

    def fetch(self, key: str) -> Record:
        with self._lock:
            self.calls.append(key)
            script = self._responses.get(key)
            if not script:
                response: Any = {"id": key}
            elif len(script) > 1:
                response = script.pop(0)
            else:
                response = script[0]
        self.entered.set()
        if not self._gate.wait(timeout=5):
            raise TimeoutError("ScriptedRemote gate was never released")
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, Record):
            return response
        return Record(key=key, data=response)


class FlakyStore(InMemoryStore):
    """InMemoryStore whose reads or writes can be switched to fail."""

    def __init__(self, initial: Mapping[str, Record] | None = None) -> None:
        super().__init__(initial)
        self.fail_reads = False
        self.fail_writes = False
        self.writes: list[dict[str, Record]] = []

    def read(self, key: str) -> Record | None:
        if self.fail_reads:
            raise StoreError(f"read of {key!r} failed")
        return super().read(key)

    def write(self, key: str, record: Record) -> None:
        if self.fail_writes:
            raise StoreError(f"write of {key!r} failed")
        self.writes.append({key: record})
        super().write(key, record)

    def write_many(self, records: Mapping[str, Record]) -> None:
        if self.fail_writes:
            raise StoreError("bulk write failed")
        self.writes.append(dict(records))
        super().write_many(records)


class InlineExecutor:
    """Executor running submitted callables synchronously."""

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any):
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait: bool = True) -> None:
        pass
