"""Straight-line (great-circle) distance between WGS84 points."""
import math
from typing import NamedTuple

EARTH_RADIUS_KM = 6371.0


class Coordinates(NamedTuple):
    lat: float
    lng: float


def coordinates_of(lat: float | None, lng: float | None) -> Coordinates | None:
    """Coordinates if both parts are set, else None."""
    if lat is None or lng is None:
        return None
    return Coordinates(float(lat), float(lng))


def distance_km(a: Coordinates, b: Coordinates) -> float:
    """Haversine distance in km.

    The haversine term is clamped to [0, 1]: float overshoot near antipodal points
    would otherwise push asin/sqrt out of their domain.
    """
    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    dphi = math.radians(b.lat - a.lat)
    dlam = math.radians(b.lng - a.lng)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))
