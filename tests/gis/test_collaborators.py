"""Tests for the postcodes.io geocoder and OSRM router adapters."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from domain.coverage.errors import (
    InputValidationError,
    LocationNotFoundError,
    NetworkError,
    RouteNotFoundError,
)
from domain.coverage.value_objects import GeoPoint
from infrastructure.coverage.geocoding import PostcodesIoGeocoder
from infrastructure.coverage.routing import TRAVEL_PROFILES, OsrmRouter, osrm_profile

WESTMINSTER = GeoPoint(latitude=51.50101, longitude=-0.141563)
CITY = GeoPoint(latitude=51.51497, longitude=-0.08178)


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# =============================================================================
# Geocoder
# =============================================================================
class TestPostcodesIoGeocoder:
    def test_resolves_postcode(self) -> None:
        """TC-001: 200 -> GeoPoint from result.latitude/longitude."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "status": 200,
                    "result": {"latitude": 51.50101, "longitude": -0.141563},
                },
            )

        geocoder = PostcodesIoGeocoder(client_for(handler))
        point = asyncio.run(geocoder.resolve("SW1A 1AA"))
        assert point == WESTMINSTER
        assert seen[0].url.raw_path == b"/postcodes/SW1A%201AA"
        assert seen[0].url.host == "api.postcodes.io"

    def test_404_is_location_not_found(self) -> None:
        """TC-002: Unknown postcode -> LocationNotFoundError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"status": 404, "error": "Postcode not found"})

        geocoder = PostcodesIoGeocoder(client_for(handler))
        with pytest.raises(LocationNotFoundError, match="ZZ9 9ZZ"):
            asyncio.run(geocoder.resolve("ZZ9 9ZZ"))

    def test_null_coordinates_not_found(self) -> None:
        """TC-003: Postcode without a location -> LocationNotFoundError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"status": 200, "result": {"latitude": None, "longitude": None}}
            )

        with pytest.raises(LocationNotFoundError):
            asyncio.run(PostcodesIoGeocoder(client_for(handler)).resolve("GY1 1AA"))

    def test_server_error_is_network_error(self) -> None:
        """TC-004: 5xx -> NetworkError (not 'not found')."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502)

        with pytest.raises(NetworkError) as excinfo:
            asyncio.run(PostcodesIoGeocoder(client_for(handler)).resolve("SW1A 1AA"))
        assert not isinstance(excinfo.value, LocationNotFoundError)

    def test_transport_error_is_network_error(self) -> None:
        """TC-005: Connection failure -> NetworkError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(NetworkError, match="timed out"):
            asyncio.run(PostcodesIoGeocoder(client_for(handler)).resolve("SW1A 1AA"))


# =============================================================================
# Router
# =============================================================================
def osrm_ok(coordinates: list[list[float]], distance: float) -> dict:
    return {
        "code": "Ok",
        "routes": [
            {"distance": distance, "geometry": {"type": "LineString", "coordinates": coordinates}}
        ],
    }


class TestOsrmRouter:
    def test_route_parses_geojson(self) -> None:
        """TC-010: lon,lat pairs become GeoPoints; distance is kept."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json=osrm_ok(
                    [[-0.141563, 51.50101], [-0.11, 51.51], [-0.08178, 51.51497]], 5123.4
                ),
            )

        router = OsrmRouter(client_for(handler))
        route = asyncio.run(router.route(WESTMINSTER, CITY, "driving-car"))
        assert route.polyline[0] == WESTMINSTER
        assert route.polyline[-1] == CITY
        assert len(route.polyline) == 3
        assert route.total_distance_m == 5123.4
        assert route.native_result["code"] == "Ok"

        url = seen[0].url
        assert url.path == "/route/v1/driving/-0.141563,51.50101;-0.08178,51.51497"
        assert url.params["overview"] == "full"
        assert url.params["geometries"] == "geojson"

    @pytest.mark.parametrize(
        "profile,expected",
        [
            ("driving-car", "driving"),
            ("driving-hgv", "driving"),
            ("cycling-regular", "cycling"),
            ("cycling-road", "cycling"),
            ("foot-walking", "foot"),
            ("foot-hiking", "foot"),
        ],
    )
    def test_profile_mapping(self, profile: str, expected: str) -> None:
        """TC-011: Travel profiles map onto OSRM profiles."""
        assert profile in TRAVEL_PROFILES
        assert osrm_profile(profile) == expected

    def test_unknown_profile(self) -> None:
        """TC-012: Unknown profile is a validation error, before any request."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        router = OsrmRouter(client_for(handler))
        with pytest.raises(InputValidationError, match="Unknown travel profile"):
            asyncio.run(router.route(WESTMINSTER, CITY, "teleport"))

    def test_no_route(self) -> None:
        """TC-013: code NoRoute -> RouteNotFoundError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"code": "NoRoute", "message": "Impossible route"})

        with pytest.raises(RouteNotFoundError):
            asyncio.run(OsrmRouter(client_for(handler)).route(WESTMINSTER, CITY))

    def test_bad_request_is_network_error(self) -> None:
        """TC-014: 400 InvalidQuery -> NetworkError with the server message."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                400, json={"code": "InvalidQuery", "message": "Query string malformed"}
            )

        with pytest.raises(NetworkError, match="Query string malformed"):
            asyncio.run(OsrmRouter(client_for(handler)).route(WESTMINSTER, CITY))

    def test_non_json_response(self) -> None:
        """TC-015: An HTML error page -> NetworkError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(504, content=b"<html>Gateway Timeout</html>")

        with pytest.raises(NetworkError, match="504"):
            asyncio.run(OsrmRouter(client_for(handler)).route(WESTMINSTER, CITY))

    def test_malformed_payload(self) -> None:
        """TC-016: Ok without routes -> NetworkError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=json.dumps({"code": "Ok", "routes": []}))

        with pytest.raises(NetworkError, match="Invalid route response"):
            asyncio.run(OsrmRouter(client_for(handler)).route(WESTMINSTER, CITY))
