"""Two-tier tile cache in front of the Ofcom tile endpoint.

Lookup order for a key ``{operator}-{zoom}-{x}-{y}-v{version}``:

1) In-memory map                 -> tiles_from_cache += 1
2) Persistent TileStore          -> promote to memory, tiles_from_cache += 1
3) In-flight fetch for same key  -> await it, tiles_from_cache += 1
4) HTTP GET                      -> write through, tiles_fetched += 1

Persistent-store failures (CacheError) are logged once and the cache carries
on memory-only. Changing the tile version orphans every existing key, which
is the only invalidation mechanism.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import httpx

from domain.coverage.config import CoverageConfig
from domain.coverage.errors import CacheError, TileFetchError
from domain.coverage.ports import TileStore
from domain.coverage.value_objects import CacheStats, Operator, TileCacheEntry

logger = logging.getLogger(__name__)


class TileCache:
    """Fetch-through cache of tile PNG bytes with hit/miss accounting.

    Parameters
    ----------
    config: CoverageConfig
        Supplies zoom, tile version and URL layout.
    store: TileStore | None
        Persistent tier; None means memory-only from the start.
    client: httpx.AsyncClient | None
        Injected HTTP client. When omitted, one is created and owned (closed
        by aclose()).
    """

    def __init__(
        self,
        config: CoverageConfig | None = None,
        *,
        store: TileStore | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or CoverageConfig()
        self._store = store
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self.config.http_timeout_s, follow_redirects=True
        )
        self._memory: dict[str, bytes] = {}
        self._in_flight: dict[str, asyncio.Task[bytes]] = {}
        self._tiles_fetched = 0
        self._tiles_from_cache = 0

    # -----------------------------------------------------------------------
    # Keys / URLs
    # -----------------------------------------------------------------------
    def cache_key(
        self, operator: Operator, tile_x: int, tile_y: int, zoom: int | None = None
    ) -> str:
        zoom = self.config.zoom if zoom is None else zoom
        return f"{operator.value}-{zoom}-{tile_x}-{tile_y}-v{self.config.tile_version}"

    def tile_url(
        self, operator: Operator, tile_x: int, tile_y: int, zoom: int | None = None
    ) -> str:
        zoom = self.config.zoom if zoom is None else zoom
        layer = self.config.tile_layer_template.format(operator=operator.value)
        base = self.config.tile_api_base.rstrip("/")
        return (
            f"{base}/{layer}/{zoom}/{tile_x}/{tile_y}.png"
            f"?v={self.config.tile_version}"
        )

    # -----------------------------------------------------------------------
    # Stats
    # -----------------------------------------------------------------------
    @property
    def stats(self) -> CacheStats:
        return CacheStats(
            tiles_fetched=self._tiles_fetched,
            tiles_from_cache=self._tiles_from_cache,
        )

    @property
    def persistent(self) -> bool:
        """False once the persistent tier has been disabled."""
        return self._store is not None

    # -----------------------------------------------------------------------
    # Fetch
    # -----------------------------------------------------------------------
    async def fetch(
        self, operator: Operator, tile_x: int, tile_y: int, zoom: int | None = None
    ) -> bytes:
        """Return tile bytes, hitting the network at most once per key.

        Raises:
            TileFetchError: network failure or non-2xx response
        """
        zoom = self.config.zoom if zoom is None else zoom
        key = self.cache_key(operator, tile_x, tile_y, zoom)

        cached = self._memory.get(key)
        if cached is not None:
            self._tiles_from_cache += 1
            logger.debug("Tile %s: memory hit", key)
            return cached

        stored = await self._store_get(key)
        if stored is not None:
            self._tiles_from_cache += 1
            self._memory[key] = stored
            logger.debug("Tile %s: store hit", key)
            return stored

        # Another fetch may have completed while the store was consulted
        cached = self._memory.get(key)
        if cached is not None:
            self._tiles_from_cache += 1
            logger.debug("Tile %s: memory hit", key)
            return cached

        pending = self._in_flight.get(key)
        if pending is not None:
            # Shield so one waiter's cancellation does not cancel the shared fetch
            data = await asyncio.shield(pending)
            self._tiles_from_cache += 1
            return data

        task = asyncio.ensure_future(self._download(operator, tile_x, tile_y, zoom, key))
        self._in_flight[key] = task
        task.add_done_callback(lambda done: self._settle(key, done))
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Future[bytes]) -> None:
        self._in_flight.pop(key, None)
        # Mark the outcome as retrieved when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    async def _download(
        self, operator: Operator, tile_x: int, tile_y: int, zoom: int, key: str
    ) -> bytes:
        url = self.tile_url(operator, tile_x, tile_y, zoom)
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TileFetchError(
                operator, zoom, tile_x, tile_y,
                f"{status} {e.response.reason_phrase}",
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TileFetchError(operator, zoom, tile_x, tile_y, str(e) or type(e).__name__) from e

        data = response.content
        # Commit both counters and tiers only after the body is complete
        self._tiles_fetched += 1
        self._memory[key] = data
        logger.info(
            "Fetched tile %s/%d/%d/%d (%dB)", operator.value, zoom, tile_x, tile_y, len(data)
        )
        await self._store_put(
            TileCacheEntry(
                key=key,
                data=data,
                size_bytes=len(data),
                written_at=datetime.now(timezone.utc),
            )
        )
        return data

    # -----------------------------------------------------------------------
    # Maintenance
    # -----------------------------------------------------------------------
    async def clear(self) -> None:
        """Drop every cached tile (memory and persistent); settings are kept."""
        self._memory.clear()
        if self._store is not None:
            try:
                await self._store.clear_tiles()
            except CacheError as e:
                self._disable_store(e)
        logger.info("Tile cache cleared")

    async def stored_tile_count(self) -> int:
        """Number of tiles in the persistent tier (0 when unavailable)."""
        if self._store is None:
            return 0
        try:
            return await self._store.count_tiles()
        except CacheError as e:
            self._disable_store(e)
            return 0

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # -----------------------------------------------------------------------
    # Persistent tier (failures degrade to memory-only)
    # -----------------------------------------------------------------------
    async def _store_get(self, key: str) -> bytes | None:
        if self._store is None:
            return None
        try:
            return await self._store.get_tile(key)
        except CacheError as e:
            self._disable_store(e)
            return None

    async def _store_put(self, entry: TileCacheEntry) -> None:
        if self._store is None:
            return
        try:
            await self._store.put_tile(entry)
        except CacheError as e:
            self._disable_store(e)

    def _disable_store(self, error: CacheError) -> None:
        if self._store is not None:
            logger.warning("Persistent tile cache disabled, using memory only: %s", error)
            self._store = None
