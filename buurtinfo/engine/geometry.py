"""Small geodesy helpers for neighbourhood centroids and amenity distances."""

import math
from decimal import Decimal, ROUND_HALF_UP

from buurtinfo.models.neighbourhood import Centroid

EARTH_RADIUS_M = 6_371_000

# Amersfoort, origin of the Dutch RD New grid (EPSG:28992)
RD_X0 = 155000.0
RD_Y0 = 463000.0
RD_LAT0 = 52.15517440
RD_LON0 = 5.38720621


def geometry_centroid(geometry: dict | None) -> Centroid | None:
    """Unweighted vertex average of the outer ring(s) of a (Multi)Polygon.

    Not an area centroid; good enough as an origin for radius searches.
    """
    if not geometry:
        return None
    gtype = geometry.get("type")
    coords = geometry.get("coordinates") or []
    points = []
    if gtype == "Polygon":
        if coords:
            points.extend(coords[0])
    elif gtype == "MultiPolygon":
        for polygon in coords:
            if polygon:
                points.extend(polygon[0])
    else:
        return None
    if not points:
        return None
    sx = sum(p[0] for p in points)
    sy = sum(p[1] for p in points)
    n = len(points)
    return Centroid(lat=sy / n, lon=sx / n)


def looks_projected(centroid: Centroid) -> bool:
    return abs(centroid.lon) > 180 or abs(centroid.lat) > 90


def rd_to_wgs84(x: float, y: float) -> Centroid:
    """Approximate RD New -> WGS84 conversion (polynomial around Amersfoort)."""
    dx = (x - RD_X0) * 1e-5
    dy = (y - RD_Y0) * 1e-5

    lat = RD_LAT0 + (
        3235.65389 * dy
        - 32.58297 * dx ** 2
        - 0.24750 * dy ** 2
        - 0.84978 * dx ** 2 * dy
        - 0.06550 * dy ** 3
        - 0.01709 * dx ** 2 * dy ** 2
        - 0.00738 * dx
        + 0.00530 * dx ** 4
        - 0.00039 * dx ** 2 * dy ** 3
        + 0.00033 * dx ** 4 * dy
        - 0.00012 * dx * dy
    ) / 3600.0

    lon = RD_LON0 + (
        5260.52916 * dx
        + 105.94684 * dx * dy
        + 2.45656 * dx * dy ** 2
        - 0.81885 * dx ** 3
        + 0.05594 * dx * dy ** 3
        - 0.05607 * dx ** 3 * dy
        + 0.01199 * dy
        - 0.00256 * dx ** 3 * dy ** 2
        + 0.00128 * dx * dy ** 4
        + 0.00022 * dy ** 2
        - 0.00022 * dx ** 2
        + 0.00026 * dx ** 5
    ) / 3600.0

    return Centroid(lat=lat, lon=lon)


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> int:
    """Great-circle distance in whole metres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return int(EARTH_RADIUS_M * c + 0.5)


def mean_distance(distances: list[int]) -> int | None:
    if not distances:
        return None
    mean = Decimal(sum(distances)) / Decimal(len(distances))
    return int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
