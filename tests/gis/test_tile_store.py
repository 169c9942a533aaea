"""Integration tests for the SQLite and in-memory tile stores."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import pytest

from domain.coverage.errors import CacheError
from domain.coverage.value_objects import TileCacheEntry
from infrastructure.coverage.tile_store import (
    SCHEMA_VERSION,
    SETTING_ROUTE_START,
    MemoryTileStore,
    SqliteTileStore,
)


def entry(key: str, data: bytes = b"\x89PNG tile") -> TileCacheEntry:
    return TileCacheEntry(
        key=key,
        data=data,
        size_bytes=len(data),
        written_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )


@pytest.fixture(params=["sqlite", "memory"])
def store(request, tmp_path: Path):
    if request.param == "sqlite":
        return SqliteTileStore(tmp_path / "cache" / "tiles.db")
    return MemoryTileStore()


# =============================================================================
# Port behaviour (both adapters)
# =============================================================================
class TestTileStorePort:
    def test_put_then_get(self, store) -> None:
        """TC-001: Stored bytes come back unchanged."""

        async def scenario() -> bytes | None:
            await store.put_tile(entry("mno3-8-184-62-v42", b"\x00\x01\xff"))
            return await store.get_tile("mno3-8-184-62-v42")

        assert asyncio.run(scenario()) == b"\x00\x01\xff"

    def test_missing_key_is_none(self, store) -> None:
        """TC-002: Unknown key -> None."""
        assert asyncio.run(store.get_tile("nope")) is None

    def test_count_and_clear_keep_settings(self, store) -> None:
        """TC-003: clear_tiles empties tiles only."""

        async def scenario() -> tuple[int, int, str | None]:
            await store.put_tile(entry("a"))
            await store.put_tile(entry("b"))
            await store.put_tile(entry("a", b"replaced"))
            await store.set_setting(SETTING_ROUTE_START, "SW1A 1AA")
            before = await store.count_tiles()
            await store.clear_tiles()
            return before, await store.count_tiles(), await store.get_setting(
                SETTING_ROUTE_START
            )

        before, after, setting = asyncio.run(scenario())
        assert before == 2
        assert after == 0
        assert setting == "SW1A 1AA"

    def test_setting_overwrite(self, store) -> None:
        """TC-004: set_setting replaces the previous value."""

        async def scenario() -> str | None:
            await store.set_setting("route-profile", "driving-car")
            await store.set_setting("route-profile", "foot-walking")
            return await store.get_setting("route-profile")

        assert asyncio.run(scenario()) == "foot-walking"


# =============================================================================
# SQLite specifics
# =============================================================================
class TestSqliteTileStore:
    def test_schema_version_recorded(self, tmp_path: Path) -> None:
        """TC-010: user_version is set and both tables exist."""
        path = tmp_path / "tiles.db"
        asyncio.run(SqliteTileStore(path).count_tiles())
        with sqlite3.connect(path) as conn:
            (version,) = conn.execute("PRAGMA user_version").fetchone()
            tables = {
                row[0]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            }
        assert version == SCHEMA_VERSION
        assert {"tiles", "settings"} <= tables

    def test_migrates_v1_database(self, tmp_path: Path) -> None:
        """TC-011: A v1 file (tiles only) gains the settings table, keeps tiles."""
        path = tmp_path / "tiles.db"
        with sqlite3.connect(path) as conn:
            conn.execute(
                "CREATE TABLE tiles (key TEXT PRIMARY KEY, data BLOB NOT NULL, "
                "size_bytes INTEGER NOT NULL, written_at REAL NOT NULL)"
            )
            conn.execute(
                "INSERT INTO tiles VALUES (?, ?, ?, ?)", ("old", b"xyz", 3, 0.0)
            )
            conn.execute("PRAGMA user_version = 1")
        conn.close()

        async def scenario() -> tuple[bytes | None, str | None]:
            store = SqliteTileStore(path)
            await store.set_setting("route-end", "EC2N 2DB")
            return await store.get_tile("old"), await store.get_setting("route-end")

        assert asyncio.run(scenario()) == (b"xyz", "EC2N 2DB")

    def test_persists_across_instances(self, tmp_path: Path) -> None:
        """TC-012: A second store on the same file sees earlier writes."""
        path = tmp_path / "tiles.db"
        asyncio.run(SqliteTileStore(path).put_tile(entry("k", b"data")))
        assert asyncio.run(SqliteTileStore(path).get_tile("k")) == b"data"

    def test_unwritable_path_raises_cache_error(self, tmp_path: Path) -> None:
        """TC-013: A path under a regular file surfaces as CacheError."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        store = SqliteTileStore(blocker / "tiles.db")
        with pytest.raises(CacheError, match="tiles.db"):
            asyncio.run(store.get_tile("k"))
