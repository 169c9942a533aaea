"""Coverage Bounded Context.

Responsible for resolving mobile-network signal coverage along a route:
- Value Objects: GeoPoint, TileIndex, SampledPoint, NetworkCoverageResult
- Services: TileGrid (tile addressing), route sampling, colour classification,
  run summaries
- Ports: GeodeticBridge, RasterSampler, TileStore, Geocoder, Router
"""
