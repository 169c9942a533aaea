"""postcodes.io adapter for the Geocoder port."""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from domain.coverage.errors import LocationNotFoundError, NetworkError
from domain.coverage.value_objects import GeoPoint

logger = logging.getLogger(__name__)

POSTCODES_IO_BASE = "https://api.postcodes.io"


class PostcodesIoGeocoder:
    """Resolve UK postcodes with https://postcodes.io (no API key).

    Parameters
    ----------
    client: httpx.AsyncClient | None
        Injected client; created and owned when omitted.
    base_url: str
        Service root, overridable for tests or a self-hosted mirror.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        base_url: str = POSTCODES_IO_BASE,
        timeout_s: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def resolve(self, query: str) -> GeoPoint:
        """Return the centroid of the postcode.

        Raises:
            LocationNotFoundError: unknown postcode or malformed payload
            NetworkError: transport failure or unexpected status
        """
        url = f"{self.base_url}/postcodes/{quote(query.strip(), safe='')}"
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to geocode postcode {query}: {e}") from e

        if response.status_code == 404:
            raise LocationNotFoundError(f"Postcode not found: {query}")
        if response.is_error:
            raise NetworkError(
                f"Failed to geocode postcode {query}: "
                f"{response.status_code} {response.reason_phrase}"
            )

        try:
            result = response.json()["result"]
            point = GeoPoint(latitude=result["latitude"], longitude=result["longitude"])
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            # Terminated/non-geographic postcodes come back with null coordinates
            raise LocationNotFoundError(f"Postcode has no location: {query}") from e

        logger.debug("Geocoded %s -> (%.5f, %.5f)", query, point.latitude, point.longitude)
        return point

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
