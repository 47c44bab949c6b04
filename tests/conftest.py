"""Pytest configuration and shared fixtures."""

import logging
from pathlib import Path

import pytest

from larder.adapters.memory.store import InMemoryStore
from larder.adapters.sqlite.record_store import SQLiteRecordStore
from larder.adapters.sqlite.schema import init_database
from larder.domain.entities import Record
from tests.helpers import FakeClock

# ============================================================================
# Global Config Isolation
# ============================================================================
# The config provider reads ~/.config/larder/config.toml. Point it at an
# empty directory so a developer's own config never changes test results.


@pytest.fixture(autouse=True)
def isolated_global_config(tmp_path_factory: pytest.TempPathFactory, monkeypatch):
    """Redirect the global config lookup to an empty per-test directory."""
    config_home = tmp_path_factory.mktemp("xdg_config")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.setenv("APPDATA", str(config_home))
    return config_home / "larder" / "config.toml"


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Manually advanced clock starting at t=1000."""
    return FakeClock()


@pytest.fixture
def post() -> Record:
    """A typical cached record."""
    return Record(key="post:1", data={"id": 1, "title": "Hello", "userId": 7})


@pytest.fixture
def memory_store() -> InMemoryStore:
    """Empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path to an initialized cache database."""
    path = tmp_path / "cache.db"
    init_database(path)
    return path


@pytest.fixture
def sqlite_store(db_path: Path):
    """SQLite record store on a fresh database, closed after the test."""
    store = SQLiteRecordStore(db_path)
    yield store
    store.close()


@pytest.fixture(autouse=True)
def reset_larder_log_level():
    """Undo the level the CLI group sets on the larder logger."""
    yield
    logging.getLogger("larder").setLevel(logging.NOTSET)
