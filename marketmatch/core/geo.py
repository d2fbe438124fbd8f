"""Great-circle helpers shared by the candidate filter and the scorer."""

import math

EARTH_RADIUS_KM = 6371.0

# Half-width of the coarse pre-filter box, in degrees (~11 km of latitude).
BOUNDING_BOX_DEGREES = 0.1


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in kilometres between two (lat, lon) points given in degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def bounding_box(
    lat: float, lon: float, degrees: float = BOUNDING_BOX_DEGREES
) -> tuple[float, float, float, float]:
    """Return (min_lat, max_lat, min_lon, max_lon) around a point."""
    return lat - degrees, lat + degrees, lon - degrees, lon + degrees
