"""Shared fixtures.

Hey future me - every test gets its own tmp_path, so each store is a fresh SQLite FILE
(not :memory:). The async engine pools connections, and an in-memory database would be a
different empty database on every connection.
"""

from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime
from pathlib import Path

import pytest

from mediashelf.config import Settings
from mediashelf.domain.entities import MediaRecord
from mediashelf.infrastructure.persistence import CacheStore, KeyValueStore

FIXED_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing every file at tmp_path, no platform roots."""
    return Settings(
        database={"url": f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"},
        storage={"data_dir": str(tmp_path / "data")},
        scanner={"default_roots": []},
        cache={"reconcile_delay_seconds": 0.0},
    )


@pytest.fixture
def kv_store(tmp_path: Path) -> KeyValueStore:
    return KeyValueStore(tmp_path / "state.json")


@pytest.fixture
async def store(settings: Settings) -> AsyncIterator[CacheStore]:
    cache_store = CacheStore.from_settings(settings)
    await cache_store.open()
    yield cache_store
    await cache_store.close()


@pytest.fixture
def make_record() -> Callable[..., MediaRecord]:
    """Factory for records with stable timestamps."""

    def _make(path: str, size: int = 1024, when: datetime = FIXED_TIME) -> MediaRecord:
        return MediaRecord.from_path(path, size, created_at=when, updated_at=when)

    return _make


@pytest.fixture
def media_tree(tmp_path: Path) -> Callable[[str, int], Path]:
    """Create a file (and its parents) below tmp_path/"media"."""
    base = tmp_path / "media"

    def _touch(relative: str, size: int = 16) -> Path:
        path = base / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\0" * size)
        return path

    base.mkdir(parents=True, exist_ok=True)
    return _touch
