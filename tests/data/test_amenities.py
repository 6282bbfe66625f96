"""Tests for neighbourhood centroids and Overpass amenity statistics."""

import math
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs

import httpx
import pytest

from buurtinfo.data.amenities import AMENITY_CATEGORIES, AmenityLocator
from buurtinfo.data.osm import OverpassClient, build_amenity_query, element_point, stats_from_elements
from buurtinfo.engine.geometry import RD_LAT0, RD_LON0
from buurtinfo.models.neighbourhood import AmenityStats, Centroid, TimestampedValue

WFS = "https://wfs.example/wijkenbuurten/wfs"
MIRRORS = ["https://overpass-a.example/api/interpreter", "https://overpass-b.example/api/interpreter"]
ORIGIN = Centroid(lat=52.0, lon=5.0)


def north_of(origin: Centroid, metres: float) -> tuple[float, float]:
    return origin.lat + math.degrees(metres / 6_371_000), origin.lon


def element_at(metres: float, kind: str = "node") -> dict:
    lat, lon = north_of(ORIGIN, metres)
    if kind == "node":
        return {"type": "node", "lat": lat, "lon": lon}
    return {"type": kind, "center": {"lat": lat, "lon": lon}}


SCHOOLS = [
    element_at(200),
    element_at(450, "way"),
    element_at(900),
    element_at(1500, "relation"),
    {"type": "way"},  # no center: ignored
]

SQUARE = {"type": "Polygon", "coordinates": [[[4.0, 52.0], [6.0, 52.0], [6.0, 54.0], [4.0, 54.0]]]}


def amenity_of(request: httpx.Request) -> str:
    query = parse_qs(request.content.decode())["data"][0]
    return query.split('["amenity"="')[1].split('"')[0]


# ── Overpass ─────────────────────────────────────────────────

class TestOverpass:
    def test_school_query_includes_related_features(self):
        query = build_amenity_query("school", ORIGIN, 3000)
        assert '(around:3000,52.0,5.0)' in query
        assert 'node["amenity"="kindergarten"]' in query
        assert 'relation["amenity"="school"]' in query
        assert "out center;" in query

    def test_plain_query(self):
        query = build_amenity_query("cafe", ORIGIN, 3000)
        assert 'node["amenity"="cafe"]' in query
        assert "way[" not in query

    def test_stats_rounded_mean(self):
        stats = stats_from_elements(ORIGIN, SCHOOLS)
        assert stats == AmenityStats(count=4, avg_distance_m=763)

    def test_no_elements(self):
        assert stats_from_elements(ORIGIN, []) == AmenityStats(count=0, avg_distance_m=None)

    def test_element_point_falls_back_to_center(self):
        assert element_point({"lat": None, "lon": None, "center": {"lat": 52.1, "lon": 5.1}}) == (52.1, 5.1)
        assert element_point({"type": "way", "center": {"lat": 52.1, "lon": 5.1}}) == (52.1, 5.1)
        assert element_point({"lat": 52.0, "lon": 5.0, "center": {"lat": 52.1, "lon": 5.1}}) == (52.0, 5.0)
        assert element_point({"lat": None, "center": None}) is None

    async def test_second_mirror_after_failure(self, make_client, diag):
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            if request.url.host == "overpass-a.example":
                return httpx.Response(504)
            return httpx.Response(200, json={"elements": SCHOOLS})

        overpass = OverpassClient(make_client(handler), urls=MIRRORS)
        stats = await overpass.amenity_stats(ORIGIN, "school", diag)

        assert stats == AmenityStats(count=4, avg_distance_m=763)
        assert hosts == ["overpass-a.example", "overpass-b.example"]

    async def test_all_mirrors_fail(self, make_client, diag):
        overpass = OverpassClient(make_client(lambda request: httpx.Response(429)), urls=MIRRORS)
        assert await overpass.amenity_stats(ORIGIN, "cafe", diag) == AmenityStats(count=0, avg_distance_m=None)


# ── Centroid + amenities ─────────────────────────────────────

def wfs_and_overpass(features: list[dict], calls: list[str] | None = None):
    def handler(request):
        if calls is not None:
            calls.append(request.url.host)
        if request.url.host == "wfs.example":
            return httpx.Response(200, json={"type": "FeatureCollection", "features": features})
        if amenity_of(request) == "school":
            return httpx.Response(200, json={"elements": SCHOOLS})
        return httpx.Response(200, json={"elements": []})

    return handler


def locator(make_client, cache, handler, locatieserver=None, overpass=None) -> AmenityLocator:
    client = make_client(handler)
    return AmenityLocator(
        client,
        cache,
        locatieserver=locatieserver or MagicMock(),
        overpass=overpass or OverpassClient(client, urls=MIRRORS),
        wfs_url=WFS,
    )


class TestCentroid:
    async def test_vertex_average(self, make_client, cache, diag):
        loc = locator(make_client, cache, wfs_and_overpass([{"geometry": SQUARE}]))
        assert await loc.neighbourhood_centroid("BU1", diag) == Centroid(lat=53.0, lon=5.0)

    async def test_projected_geometry_converted(self, make_client, cache, diag):
        rd_square = {
            "type": "MultiPolygon",
            "coordinates": [[[[154000.0, 462000.0], [156000.0, 462000.0], [156000.0, 464000.0], [154000.0, 464000.0]]]],
        }
        loc = locator(make_client, cache, wfs_and_overpass([{"geometry": rd_square}]))
        centroid = await loc.neighbourhood_centroid("BU1", diag)
        assert centroid.lat == pytest.approx(RD_LAT0, abs=1e-9)
        assert centroid.lon == pytest.approx(RD_LON0, abs=1e-9)

    async def test_cached(self, make_client, cache, diag):
        calls = []
        loc = locator(make_client, cache, wfs_and_overpass([{"geometry": SQUARE}], calls))
        await loc.neighbourhood_centroid("BU1", diag)
        await loc.neighbourhood_centroid("BU1", diag)
        assert calls == ["wfs.example"]

    async def test_no_features(self, make_client, cache, diag):
        loc = locator(make_client, cache, wfs_and_overpass([]))
        assert await loc.neighbourhood_centroid("BU1", diag) is None

    @pytest.mark.parametrize("features", [{"0": {"geometry": SQUARE}}, ["not a feature"], [{"geometry": "POLYGON"}]])
    async def test_malformed_features(self, make_client, cache, diag, features):
        loc = locator(make_client, cache, wfs_and_overpass(features))
        assert await loc.neighbourhood_centroid("BU1", diag) is None


class TestFetchAmenities:
    async def test_bag_for_every_category(self, make_client, cache, diag):
        loc = locator(make_client, cache, wfs_and_overpass([{"geometry": SQUARE}]))
        bag = await loc.fetch_amenities("BU1", diag=diag)

        assert len(bag) == 2 * len(AMENITY_CATEGORIES)
        assert set(bag) == {k for c in AMENITY_CATEGORIES for k in (c.count_key, c.distance_key)}
        assert bag["avgDistanceToCafes"] == TimestampedValue(value=None, year=None)

    async def test_counts_and_distances(self, make_client, cache, diag):
        square_at_origin = {
            "type": "Polygon",
            "coordinates": [[[4.9, 51.9], [5.1, 51.9], [5.1, 52.1], [4.9, 52.1]]],
        }
        loc = locator(make_client, cache, wfs_and_overpass([{"geometry": square_at_origin}]))
        bag = await loc.fetch_amenities("BU1", diag=diag)

        assert bag["schoolsInNeighbourhood"] == TimestampedValue(value=4)
        assert bag["avgDistanceToSchools"] == TimestampedValue(value=763)
        assert bag["cafesInNeighbourhood"] == TimestampedValue(value=0)

    async def test_served_from_cache(self, make_client, cache, diag):
        calls = []
        loc = locator(make_client, cache, wfs_and_overpass([{"geometry": SQUARE}], calls))
        first = await loc.fetch_amenities("BU1", diag=diag)
        n = len(calls)
        second = await loc.fetch_amenities("BU1", diag=diag)

        assert second == first
        assert len(calls) == n

    async def test_failed_category_is_zero(self, make_client, cache, diag):
        async def stats(centroid, amenity, diag):
            if amenity == "restaurant":
                raise RuntimeError("boom")
            return AmenityStats(count=2, avg_distance_m=300)

        overpass = MagicMock()
        overpass.amenity_stats = AsyncMock(side_effect=stats)
        loc = locator(make_client, cache, wfs_and_overpass([{"geometry": SQUARE}]), overpass=overpass)
        bag = await loc.fetch_amenities("BU1", diag=diag)

        assert bag["restaurantsInNeighbourhood"] == TimestampedValue(value=0)
        assert bag["avgDistanceToRestaurants"] == TimestampedValue(value=None)
        assert bag["supermarketsInNeighbourhood"] == TimestampedValue(value=2)

    async def test_address_centroid_fallback(self, make_client, cache, diag):
        locatieserver = MagicMock()
        locatieserver.geocode_point = AsyncMock(return_value=ORIGIN)
        loc = locator(make_client, cache, wfs_and_overpass([]), locatieserver=locatieserver)

        bag = await loc.fetch_amenities("BU1", "Damrak 1", diag)

        locatieserver.geocode_point.assert_awaited_once_with("Damrak 1", diag)
        assert bag["schoolsInNeighbourhood"] == TimestampedValue(value=4)

    async def test_address_fallback_after_malformed_wfs_body(self, make_client, cache, diag):
        locatieserver = MagicMock()
        locatieserver.geocode_point = AsyncMock(return_value=ORIGIN)
        loc = locator(make_client, cache, wfs_and_overpass({"bad": "shape"}), locatieserver=locatieserver)

        bag = await loc.fetch_amenities("BU1", "Damrak 1", diag)

        assert bag["schoolsInNeighbourhood"] == TimestampedValue(value=4)

    async def test_no_centroid(self, make_client, cache, diag):
        loc = locator(make_client, cache, wfs_and_overpass([]))
        assert await loc.fetch_amenities("BU1", diag=diag) == {}
