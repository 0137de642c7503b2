"""Distance helpers for meeting search."""
import math

from processor.models import Coordinate

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.0


def distance_km(a: Coordinate, b: Coordinate) -> float:
    """
    Great-circle distance between two coordinates using the haversine formula.

    Args:
        a: First coordinate
        b: Second coordinate

    Returns:
        Distance in kilometers rounded to one decimal place
    """
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)

    h = (
        math.sin(d_lat / 2) ** 2 +
        math.cos(math.radians(a.lat)) *
        math.cos(math.radians(b.lat)) *
        math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return round_half_up(EARTH_RADIUS_KM * c)


def round_half_up(value: float, digits: int = 1) -> float:
    """Round halves up (round() sends exact ties to the even digit)."""
    scale = 10 ** digits
    return math.floor(value * scale + 0.5) / scale


def drift_km(a: Coordinate, b: Coordinate) -> float:
    """
    Planar degrees-to-km approximation of how far an origin has moved.

    Only used as a coarse staleness check for cached results; it misjudges
    distances near the poles and across the antimeridian.
    """
    return math.sqrt((a.lat - b.lat) ** 2 + (a.lng - b.lng) ** 2) * KM_PER_DEGREE
