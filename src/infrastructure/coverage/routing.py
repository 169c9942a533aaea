"""OSRM adapter for the Router port.

Travel profiles use the openrouteservice-style names accepted at the CLI and
map onto the three OSRM profiles.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from domain.coverage.errors import InputValidationError, NetworkError, RouteNotFoundError
from domain.coverage.value_objects import GeoPoint, RouteResult

logger = logging.getLogger(__name__)

OSRM_BASE = "https://router.project-osrm.org"

DEFAULT_PROFILE = "driving-car"

# Travel profile -> OSRM profile
_OSRM_PROFILES: dict[str, str] = {
    "driving-car": "driving",
    "driving-hgv": "driving",
    "cycling-regular": "cycling",
    "cycling-road": "cycling",
    "foot-walking": "foot",
    "foot-hiking": "foot",
}

TRAVEL_PROFILES: tuple[str, ...] = tuple(_OSRM_PROFILES)


def osrm_profile(profile: str) -> str:
    """Map a travel profile to its OSRM profile.

    Raises:
        InputValidationError: unknown profile
    """
    try:
        return _OSRM_PROFILES[profile]
    except KeyError:
        raise InputValidationError(
            f"Unknown travel profile: {profile} "
            f"(expected one of {', '.join(TRAVEL_PROFILES)})"
        ) from None


class OsrmRouter:
    """Fetch a full-resolution GeoJSON route from an OSRM server.

    Parameters
    ----------
    client: httpx.AsyncClient | None
        Injected client; created and owned when omitted.
    base_url: str
        OSRM server root (default: the public demo server).
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        base_url: str = OSRM_BASE,
        timeout_s: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def route(
        self, origin: GeoPoint, destination: GeoPoint, profile: str = DEFAULT_PROFILE
    ) -> RouteResult:
        """Return the fastest route between two points.

        Raises:
            InputValidationError: unknown profile
            RouteNotFoundError: OSRM reports no route
            NetworkError: transport failure, unexpected status or payload
        """
        # OSRM takes lon,lat pairs
        coordinates = (
            f"{origin.longitude},{origin.latitude};"
            f"{destination.longitude},{destination.latitude}"
        )
        url = f"{self.base_url}/route/v1/{osrm_profile(profile)}/{coordinates}"
        try:
            response = await self._client.get(
                url, params={"overview": "full", "geometries": "geojson"}
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to fetch route: {e}") from e

        try:
            payload = response.json()
        except ValueError as e:
            raise NetworkError(
                f"Route request failed: {response.status_code} {response.reason_phrase}"
            ) from e

        code = payload.get("code") if isinstance(payload, dict) else None
        if code in ("NoRoute", "NoSegment") or response.status_code == 404:
            raise RouteNotFoundError("Route not found between these locations")
        if response.is_error or code != "Ok":
            message = payload.get("message") if isinstance(payload, dict) else None
            raise NetworkError(
                f"Route request failed: {response.status_code} {message or code}"
            )

        try:
            best = payload["routes"][0]
            polyline = tuple(
                GeoPoint(latitude=lat, longitude=lon)
                for lon, lat in best["geometry"]["coordinates"]
            )
            result = RouteResult(
                polyline=polyline,
                total_distance_m=float(best["distance"]),
                native_result=payload,
            )
        except (KeyError, IndexError, TypeError, ValueError, ValidationError) as e:
            raise NetworkError(f"Invalid route response from OSRM: {e}") from e

        logger.info(
            "Route %s: %d vertices, %.0f m",
            profile,
            len(result.polyline),
            result.total_distance_m,
        )
        return result

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
