"""Integration tests for PyprojGeodeticBridge and LazyProvider.

Reference: Big Ben (51.50073 N, 0.12463 W) ~ BNG (530268, 179640),
tile (184, 62) at zoom 8.
"""

from __future__ import annotations

import asyncio
import math

import pytest

from domain.coverage.errors import ProviderUnavailableError
from domain.coverage.tiling import TileGrid
from domain.coverage.value_objects import TileIndex
from infrastructure.coverage.lifecycle import LazyProvider, ProviderState
from infrastructure.coverage.projection import PyprojGeodeticBridge

BIG_BEN = (51.50073, -0.12463)


# =============================================================================
# WGS84 <-> BNG
# =============================================================================
class TestPyprojBridge:
    def test_big_ben_projects_to_bng(self, bridge) -> None:
        """TC-001: Big Ben lands at ~(530268, 179640)."""
        projected = bridge.to_projected(*BIG_BEN)
        assert projected.easting == pytest.approx(530268, abs=50)
        assert projected.northing == pytest.approx(179640, abs=50)

    def test_big_ben_tile_zoom_8(self, bridge) -> None:
        """TC-002: Big Ben is in tile (184, 62, 8)."""
        tile = TileGrid().to_tile(bridge.to_projected(*BIG_BEN), 8)
        assert tile == TileIndex(x=184, y=62, zoom=8)

    def test_round_trip(self, bridge) -> None:
        """TC-003: to_geographic inverts to_projected."""
        projected = bridge.to_projected(*BIG_BEN)
        lat, lon = bridge.to_geographic(projected.easting, projected.northing)
        assert lat == pytest.approx(BIG_BEN[0], abs=1e-6)
        assert lon == pytest.approx(BIG_BEN[1], abs=1e-6)

    def test_nan_in_nan_out(self, bridge) -> None:
        """TC-004: NaN input yields NaN, not an exception."""
        projected = bridge.to_projected(math.nan, -0.1)
        assert math.isnan(projected.easting) and math.isnan(projected.northing)
        lat, lon = bridge.to_geographic(math.nan, 0.0)
        assert math.isnan(lat) and math.isnan(lon)

    def test_ready_state(self, bridge) -> None:
        """TC-005: The session bridge is READY."""
        assert bridge.state is ProviderState.READY

    def test_use_before_ready_raises(self) -> None:
        """TC-006: Conversions require ensure_ready()."""
        fresh = PyprojGeodeticBridge()
        assert fresh.state is ProviderState.UNINITIALIZED
        with pytest.raises(ProviderUnavailableError, match="not ready"):
            fresh.to_projected(*BIG_BEN)

    def test_invalid_crs_fails_then_retries(self) -> None:
        """TC-007: A bad CRS fails the provider; the next call tries again."""
        broken = PyprojGeodeticBridge("EPSG:999999")
        with pytest.raises(ProviderUnavailableError):
            asyncio.run(broken.ensure_ready())
        assert broken.state is ProviderState.FAILED
        with pytest.raises(ProviderUnavailableError):
            asyncio.run(broken.ensure_ready())


# =============================================================================
# LazyProvider state machine
# =============================================================================
class TestLazyProvider:
    def test_loads_once_for_concurrent_callers(self) -> None:
        """TC-010: Concurrent get() calls share one load."""
        calls = 0

        async def loader() -> str:
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            return "value"

        async def scenario() -> list[str]:
            provider = LazyProvider("test", loader)
            values = await asyncio.gather(*(provider.get() for _ in range(5)))
            assert provider.state is ProviderState.READY
            assert provider.get_nowait() == "value"
            return values

        assert asyncio.run(scenario()) == ["value"] * 5
        assert calls == 1

    def test_timeout_marks_failed(self) -> None:
        """TC-011: A load exceeding the timeout becomes ProviderUnavailableError."""

        async def slow() -> str:
            await asyncio.sleep(1)
            return "late"

        async def scenario() -> LazyProvider[str]:
            provider = LazyProvider("slow", slow, timeout_s=0.01)
            with pytest.raises(ProviderUnavailableError, match="Timeout"):
                await provider.get()
            return provider

        provider = asyncio.run(scenario())
        assert provider.state is ProviderState.FAILED

    def test_retry_after_failure(self) -> None:
        """TC-012: FAILED -> next get() reloads."""
        attempts: list[int] = []

        async def flaky() -> int:
            attempts.append(1)
            if len(attempts) == 1:
                raise ProviderUnavailableError("first attempt fails")
            return 42

        async def scenario() -> int:
            provider = LazyProvider("flaky", flaky)
            with pytest.raises(ProviderUnavailableError):
                await provider.get()
            assert provider.state is ProviderState.FAILED
            return await provider.get()

        assert asyncio.run(scenario()) == 42
        assert len(attempts) == 2
