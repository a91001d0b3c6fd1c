"""
Geospatial helpers shared by the scoring engine.

Distances use the Haversine great-circle formula. Segment midpoints are a
flat arithmetic mean, which is accurate enough at the tens-of-metres scale
of consecutive route points.
"""

import math
from typing import List, Tuple

from .models import BoundingBox, Coordinate, Segment

EARTH_RADIUS_M = 6371000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance in metres between two lat/lon points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance(a: Coordinate, b: Coordinate) -> float:
    return haversine_m(a.lat, a.lon, b.lat, b.lon)


def midpoint(a: Coordinate, b: Coordinate) -> Coordinate:
    return Coordinate(lat=(a.lat + b.lat) / 2, lon=(a.lon + b.lon) / 2)


def flat_distance_deg(a: Coordinate, b: Coordinate) -> float:
    """Euclidean distance in raw degrees. 0.001 deg is roughly 100 m."""
    return math.hypot(a.lat - b.lat, a.lon - b.lon)


def make_segment(start: Coordinate, end: Coordinate) -> Segment:
    return Segment(start=start, end=end, center=midpoint(start, end))


def bounding_box(center: Coordinate, half_size_deg: float = 0.01) -> BoundingBox:
    """Square box around a point; the default spans roughly 2 km."""
    return BoundingBox(
        center=center,
        min_lat=center.lat - half_size_deg,
        max_lat=center.lat + half_size_deg,
        min_lon=center.lon - half_size_deg,
        max_lon=center.lon + half_size_deg,
    )


def decode_polyline(polyline_str: str, precision: int = 5) -> List[Tuple[float, float]]:
    """
    Decode a polyline string (encoded by Google's polyline algorithm).
    Returns list of (lat, lon) tuples.
    """
    inv = 1.0 / (10 ** precision)
    decoded = []
    previous = [0, 0]
    i = 0

    while i < len(polyline_str):
        ll = [0, 0]
        for j in [0, 1]:
            shift = 0
            result = 0
            while True:
                if i >= len(polyline_str):
                    raise ValueError("Truncated polyline string")
                byte_val = ord(polyline_str[i]) - 63
                i += 1
                result |= (byte_val & 0x1f) << shift
                shift += 5
                if not (byte_val & 0x20):
                    break

            if result & 1:
                ll[j] = previous[j] + ~(result >> 1)
            else:
                ll[j] = previous[j] + (result >> 1)
            previous[j] = ll[j]

        decoded.append((ll[0] * inv, ll[1] * inv))

    return decoded
