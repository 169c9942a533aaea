"""Infrastructure adapters for the coverage bounded context.

Adapters exported for simplified imports:
- PyprojGeodeticBridge: WGS84 <-> BNG via pyproj
- RasterioPixelSampler: PNG pixel reads via rasterio
- SqliteTileStore / MemoryTileStore: persistent tile and settings store
- TileCache: two-tier tile cache over httpx
- PostcodesIoGeocoder / OsrmRouter: geocoding and routing collaborators
"""

from .geocoding import PostcodesIoGeocoder
from .lifecycle import LazyProvider, ProviderState
from .projection import PyprojGeodeticBridge
from .raster import RasterioPixelSampler
from .routing import TRAVEL_PROFILES, OsrmRouter
from .tile_cache import TileCache
from .tile_store import MemoryTileStore, SqliteTileStore

__all__ = [
    "LazyProvider",
    "MemoryTileStore",
    "OsrmRouter",
    "PostcodesIoGeocoder",
    "ProviderState",
    "PyprojGeodeticBridge",
    "RasterioPixelSampler",
    "SqliteTileStore",
    "TRAVEL_PROFILES",
    "TileCache",
]
