"""Amenities around a neighbourhood: centroid lookup + Overpass statistics."""

import asyncio
import logging
from dataclasses import dataclass

import httpx

from buurtinfo.config import settings
from buurtinfo.data.cache import AMENITIES_TTL_MS, CENTROID_TTL_MS, TTLCache
from buurtinfo.data.http import get_json
from buurtinfo.data.locatieserver import LocatieserverClient
from buurtinfo.data.osm import OverpassClient
from buurtinfo.engine.geometry import geometry_centroid, looks_projected, rd_to_wgs84
from buurtinfo.models.diagnostics import Diagnostics
from buurtinfo.models.neighbourhood import (
    AmenityStats,
    Centroid,
    PropertyBag,
    TimestampedValue,
    bag_from_dict,
    bag_to_dict,
)

logger = logging.getLogger(__name__)

WFS_TIMEOUT = 5.0


@dataclass(frozen=True)
class AmenityCategory:
    amenity: str  # OSM amenity tag value
    count_key: str
    distance_key: str


AMENITY_CATEGORIES: list[AmenityCategory] = [
    AmenityCategory("school", "schoolsInNeighbourhood", "avgDistanceToSchools"),
    AmenityCategory("doctors", "gpsInNeighbourhood", "avgDistanceToGps"),
    AmenityCategory("childcare", "afterSchoolCareInNeighbourhood", "avgDistanceToAfterSchoolCare"),
    AmenityCategory("kindergarten", "daycareInNeighbourhood", "avgDistanceToDaycare"),
    AmenityCategory("restaurant", "restaurantsInNeighbourhood", "avgDistanceToRestaurants"),
    AmenityCategory("supermarket", "supermarketsInNeighbourhood", "avgDistanceToSupermarkets"),
    AmenityCategory("cafe", "cafesInNeighbourhood", "avgDistanceToCafes"),
]


class AmenityLocator:
    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: TTLCache,
        locatieserver: LocatieserverClient | None = None,
        overpass: OverpassClient | None = None,
        wfs_url: str | None = None,
    ):
        self.client = client
        self.cache = cache
        self.locatieserver = locatieserver or LocatieserverClient(client)
        self.overpass = overpass or OverpassClient(client)
        self.wfs_url = wfs_url or settings.wfs_url

    async def neighbourhood_centroid(self, code: str, diag: Diagnostics) -> Centroid | None:
        """Centroid of the neighbourhood polygon from the CBS buurt WFS layer."""
        cache_key = f"centroid:{code}"
        cached = await self.cache.get(cache_key, CENTROID_TTL_MS)
        if cached:
            diag.add(f"[WFS] centroid cache hit for {code}")
            return Centroid(lat=cached["lat"], lon=cached["lon"])

        params = {
            "service": "WFS",
            "version": "2.0.0",
            "request": "GetFeature",
            "typeName": "wijkenbuurten:buurt_2021",
            "srsName": "EPSG:4326",
            "outputFormat": "application/json",
            "cql_filter": f"buurtcode='{code}'",
        }
        try:
            collection = await get_json(self.client, self.wfs_url, params=params, timeout=WFS_TIMEOUT)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("WFS centroid request failed for %s: %s", code, e)
            diag.add(f"[WFS] error {e}")
            return None

        features = collection.get("features") if isinstance(collection, dict) else None
        feature = features[0] if isinstance(features, list) and features else None
        if not isinstance(feature, dict) or not isinstance(feature.get("geometry"), dict):
            diag.add("[WFS] no features")
            return None

        centroid = geometry_centroid(feature["geometry"])
        if centroid is None:
            diag.add(f"[WFS] unsupported geometry {feature['geometry'].get('type')}")
            return None
        if looks_projected(centroid):
            diag.add("[WFS] centroid looked like RD; converted to WGS84")
            centroid = rd_to_wgs84(centroid.lon, centroid.lat)

        diag.add(f"[WFS] centroid {centroid.lat},{centroid.lon}")
        await self.cache.set(cache_key, {"lat": centroid.lat, "lon": centroid.lon}, CENTROID_TTL_MS)
        return centroid

    async def _category_stats(self, centroid: Centroid, category: AmenityCategory, diag: Diagnostics) -> AmenityStats:
        try:
            return await self.overpass.amenity_stats(centroid, category.amenity, diag)
        except Exception as e:
            logger.warning("Amenity lookup failed for %s: %s", category.amenity, e)
            diag.add(f"[Amenities] {category.amenity} failed {e}")
            return AmenityStats(count=0, avg_distance_m=None)

    async def fetch_amenities(
        self,
        code: str,
        address_query: str | None = None,
        diag: Diagnostics | None = None,
    ) -> PropertyBag:
        """Amenity counts and average distances around the neighbourhood.

        Returns an empty bag when no centroid can be determined.
        """
        diag = diag if diag is not None else Diagnostics()
        cache_key = f"amenities:{code}"
        cached = await self.cache.get(cache_key, AMENITIES_TTL_MS)
        if cached:
            diag.add("[Amenities] cache hit")
            return bag_from_dict(cached)

        centroid = await self.neighbourhood_centroid(code, diag)
        if centroid is None and address_query:
            diag.add("[Amenities] fallback: geocoding address centroid")
            centroid = await self.locatieserver.geocode_point(address_query, diag)
        if centroid is None:
            diag.add("[Amenities] no centroid")
            return {}

        stats = await asyncio.gather(
            *(self._category_stats(centroid, cat, diag) for cat in AMENITY_CATEGORIES)
        )

        bag: PropertyBag = {}
        for category, s in zip(AMENITY_CATEGORIES, stats):
            bag[category.count_key] = TimestampedValue(value=s.count)
            bag[category.distance_key] = TimestampedValue(value=s.avg_distance_m)

        await self.cache.set(cache_key, bag_to_dict(bag), AMENITIES_TTL_MS)
        return bag
