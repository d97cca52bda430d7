import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0

# Slightly under the true ~111.19 km per degree, so boxes err on the wide side.
KM_PER_DEG = 111.0


def haversine(lat1, lon1, lat2, lon2):
    """Great-circle distance in km between two points given in degrees."""
    R = EARTH_RADIUS_KM
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )
    # rounding can push antipodal points a hair above 1; NaN must pass through
    if a > 1.0:
        a = 1.0

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return R * c


def distance_between(a, b) -> float:
    """Distance in km between two GeoPoint-like objects."""
    return haversine(a.latitude, a.longitude, b.latitude, b.longitude)


def km_to_deg_lat(km: float) -> float:
    return km / KM_PER_DEG


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    # one range normally, two when the box straddles the antimeridian
    lon_ranges: tuple[tuple[float, float], ...]

    def contains(self, lat: float, lon: float) -> bool:
        if not (self.min_lat <= lat <= self.max_lat):
            return False
        return any(lo <= lon <= hi for lo, hi in self.lon_ranges)


_ALL_LONGITUDES = ((-180.0, 180.0),)


def bounding_box(lat: float, lon: float, radius_km: float) -> BoundingBox:
    """
    Conservative lat/lon box around a circle of radius_km.

    Used as an index-friendly pre-filter only; callers still apply the exact
    haversine distance to whatever the box lets through.
    """
    d_lat = km_to_deg_lat(radius_km)
    min_lat = lat - d_lat
    max_lat = lat + d_lat

    if min_lat <= -90.0 or max_lat >= 90.0:
        return BoundingBox(max(min_lat, -90.0), min(max_lat, 90.0), _ALL_LONGITUDES)

    # a degree of longitude is shortest at the box edge nearest a pole
    widest_lat = max(abs(min_lat), abs(max_lat))
    d_lon = radius_km / (KM_PER_DEG * math.cos(math.radians(widest_lat)))
    if d_lon >= 180.0:
        return BoundingBox(min_lat, max_lat, _ALL_LONGITUDES)

    lon_min = lon - d_lon
    lon_max = lon + d_lon

    if lon_min < -180.0:
        ranges = ((lon_min + 360.0, 180.0), (-180.0, lon_max))
    elif lon_max > 180.0:
        ranges = ((lon_min, 180.0), (-180.0, lon_max - 360.0))
    else:
        ranges = ((lon_min, lon_max),)

    return BoundingBox(min_lat, max_lat, ranges)
