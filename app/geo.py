"""Great-circle distance helpers.

Coordinates follow the GeoJSON convention used across the booking payloads:
``(longitude, latitude)`` in degrees.
"""

from math import atan2, cos, radians, sin, sqrt

EARTH_RADIUS_KM = 6371.0

Coordinates = tuple[float, float] | list[float]


def distance_km(a: Coordinates, b: Coordinates) -> float:
    """Haversine distance between two ``(lon, lat)`` points in kilometers."""
    lon1, lat1 = a
    lon2, lat2 = b
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)

    h = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2) ** 2
    return EARTH_RADIUS_KM * 2 * atan2(sqrt(h), sqrt(1 - h))
