"""OpenStreetMap Overpass API: amenity counts and distances around a point.

Free, no API key required. Mirrors are tried in order until one answers.
"""

import logging

import httpx

from buurtinfo.config import settings
from buurtinfo.data.http import post_form_json
from buurtinfo.engine.geometry import haversine_m, mean_distance
from buurtinfo.models.diagnostics import Diagnostics
from buurtinfo.models.neighbourhood import AmenityStats, Centroid

logger = logging.getLogger(__name__)

OVERPASS_TIMEOUT = 6.0


def build_amenity_query(amenity: str, centroid: Centroid, radius_m: int) -> str:
    around = f"(around:{radius_m},{centroid.lat},{centroid.lon})"
    # The schools view also counts kindergartens, colleges and school grounds
    extra = ""
    if amenity == "school":
        extra = f"""
      node["amenity"="kindergarten"]{around};
      node["amenity"="college"]{around};
      way["amenity"="school"]{around};
      relation["amenity"="school"]{around};"""
    return f"""
    [out:json][timeout:25];
    (
      node["amenity"="{amenity}"]{around};{extra}
    );
    out center;
    """


def element_point(element: dict) -> tuple[float, float] | None:
    """Point of a node, or the label point (``center``) of a way/relation."""
    center = element.get("center")
    if not isinstance(center, dict):
        center = {}
    lat = element.get("lat") if element.get("lat") is not None else center.get("lat")
    lon = element.get("lon") if element.get("lon") is not None else center.get("lon")
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return None
    return float(lat), float(lon)


def stats_from_elements(centroid: Centroid, elements: list[dict]) -> AmenityStats:
    distances = []
    for el in elements:
        point = element_point(el) if isinstance(el, dict) else None
        if point is not None:
            distances.append(haversine_m(centroid.lat, centroid.lon, *point))
    return AmenityStats(count=len(distances), avg_distance_m=mean_distance(distances))


class OverpassClient:
    def __init__(self, client: httpx.AsyncClient, urls: list[str] | None = None):
        self.client = client
        self.urls = urls or settings.overpass_urls

    async def amenity_stats(
        self,
        centroid: Centroid,
        amenity: str,
        diag: Diagnostics,
        radius_m: int | None = None,
    ) -> AmenityStats:
        """Count and average distance of an amenity around a point.

        Returns zero/None stats when every mirror fails.
        """
        query = build_amenity_query(amenity, centroid, radius_m or settings.amenity_radius_m)
        for url in self.urls:
            diag.add(f"[Overpass] try {url} ({amenity})")
            try:
                data = await post_form_json(self.client, url, data={"data": query}, timeout=OVERPASS_TIMEOUT)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("Overpass request to %s failed for %s: %s", url, amenity, e)
                diag.add(f"[Overpass] error {url} {e}")
                continue
            elements = data.get("elements") if isinstance(data, dict) else None
            stats = stats_from_elements(centroid, elements or [])
            diag.add(f"[Overpass] ok {url} {amenity} count {stats.count} avg {stats.avg_distance_m}")
            return stats
        return AmenityStats(count=0, avg_distance_m=None)
