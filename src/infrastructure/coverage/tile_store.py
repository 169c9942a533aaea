"""Persistent tile/settings store adapters for the TileStore port.

SqliteTileStore keeps two independent collections in one database file:

    tiles(key TEXT PRIMARY KEY, data BLOB, size_bytes INTEGER, written_at REAL)
    settings(key TEXT PRIMARY KEY, value TEXT)

The layout version lives in ``PRAGMA user_version``; bump SCHEMA_VERSION and
add a migration step whenever a collection changes. Blocking sqlite calls run
in worker threads (asyncio.to_thread) with one short-lived connection each.
Every sqlite/OS failure surfaces as CacheError so callers can degrade.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from contextlib import closing
from pathlib import Path
from typing import TypeVar

from domain.coverage.errors import CacheError
from domain.coverage.value_objects import TileCacheEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA_VERSION = 2  # v2 added the settings collection

# Settings keys
SETTING_ROUTE_START = "route-start"
SETTING_ROUTE_END = "route-end"
SETTING_ROUTE_PROFILE = "route-profile"
SETTING_TILE_NETWORK = "tile-network"

_MIGRATIONS: dict[int, tuple[str, ...]] = {
    1: (
        """CREATE TABLE IF NOT EXISTS tiles (
            key TEXT PRIMARY KEY,
            data BLOB NOT NULL,
            size_bytes INTEGER NOT NULL,
            written_at REAL NOT NULL
        )""",
    ),
    2: (
        """CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )""",
    ),
}


class SqliteTileStore:
    """SQLite-backed TileStore.

    Parameters
    ----------
    path: Path | str
        Database file. Parent directories are created on first use.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._initialized = False
        self._init_lock = asyncio.Lock()

    # -----------------------------------------------------------------------
    # Connection / schema
    # -----------------------------------------------------------------------
    def _connect(self) -> sqlite3.Connection:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return sqlite3.connect(self.path, timeout=5.0)

    def _migrate(self) -> None:
        with closing(self._connect()) as conn, conn:
            (current,) = conn.execute("PRAGMA user_version").fetchone()
            for version in range(current + 1, SCHEMA_VERSION + 1):
                for statement in _MIGRATIONS[version]:
                    conn.execute(statement)
                logger.info(
                    "Tile store %s: migrated schema to v%d", self.path.name, version
                )
            if current < SCHEMA_VERSION:
                # PRAGMA does not accept bound parameters
                conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION:d}")

    async def _run(self, operation: Callable[[sqlite3.Connection], T]) -> T:
        """Run operation on a fresh connection in a worker thread."""
        try:
            if not self._initialized:
                async with self._init_lock:
                    if not self._initialized:
                        await asyncio.to_thread(self._migrate)
                        self._initialized = True

            def call() -> T:
                with closing(self._connect()) as conn, conn:
                    return operation(conn)

            return await asyncio.to_thread(call)
        except (sqlite3.Error, OSError) as e:
            # Log only the file name, not the full path
            raise CacheError(f"Tile store {self.path.name} unavailable: {e}") from e

    # -----------------------------------------------------------------------
    # Tiles
    # -----------------------------------------------------------------------
    async def get_tile(self, key: str) -> bytes | None:
        row = await self._run(
            lambda conn: conn.execute(
                "SELECT data FROM tiles WHERE key = ?", (key,)
            ).fetchone()
        )
        return None if row is None else bytes(row[0])

    async def put_tile(self, entry: TileCacheEntry) -> None:
        await self._run(
            lambda conn: conn.execute(
                "INSERT OR REPLACE INTO tiles (key, data, size_bytes, written_at) "
                "VALUES (?, ?, ?, ?)",
                (
                    entry.key,
                    entry.data,
                    entry.size_bytes,
                    entry.written_at.timestamp(),
                ),
            )
        )

    async def count_tiles(self) -> int:
        (count,) = await self._run(
            lambda conn: conn.execute("SELECT COUNT(*) FROM tiles").fetchone()
        )
        return int(count)

    async def clear_tiles(self) -> None:
        await self._run(lambda conn: conn.execute("DELETE FROM tiles"))

    # -----------------------------------------------------------------------
    # Settings
    # -----------------------------------------------------------------------
    async def get_setting(self, key: str) -> str | None:
        row = await self._run(
            lambda conn: conn.execute(
                "SELECT value FROM settings WHERE key = ?", (key,)
            ).fetchone()
        )
        return None if row is None else str(row[0])

    async def set_setting(self, key: str, value: str) -> None:
        await self._run(
            lambda conn: conn.execute(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                (key, value),
            )
        )


class MemoryTileStore:
    """In-process TileStore (no persistence); useful for tests and ephemeral runs."""

    def __init__(self) -> None:
        self.tiles: dict[str, TileCacheEntry] = {}
        self.settings: dict[str, str] = {}

    async def get_tile(self, key: str) -> bytes | None:
        entry = self.tiles.get(key)
        return None if entry is None else entry.data

    async def put_tile(self, entry: TileCacheEntry) -> None:
        self.tiles[entry.key] = entry

    async def count_tiles(self) -> int:
        return len(self.tiles)

    async def clear_tiles(self) -> None:
        self.tiles.clear()

    async def get_setting(self, key: str) -> str | None:
        return self.settings.get(key)

    async def set_setting(self, key: str, value: str) -> None:
        self.settings[key] = value
