"""Nearby-store lookup.

Stores within a fixed radius (10 km) of a point, nearest first, capped at 10.
Points outside the radius are excluded, not ranked lower.
"""

import math

from app.services.errors import InvalidCoordinates
from app.stores.base import StoreBackend, StoreRecord

EARTH_RADIUS_M = 6_371_008.8
NEARBY_MAX_DISTANCE_M = 10_000
NEARBY_LIMIT = 10


def haversine_m(lng1: float, lat1: float, lng2: float, lat2: float) -> float:
    """Great-circle distance in metres between two (lng, lat) points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lng2 - lng1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def parse_coordinates(lng: object, lat: object) -> tuple[float, float]:
    """Parse a (lng, lat) pair from query input.

    Raises:
        InvalidCoordinates: non-numeric, non-finite or out-of-range values.
    """
    try:
        lng_f = float(lng)  # type: ignore[arg-type]
        lat_f = float(lat)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        raise InvalidCoordinates(
            "Coordinates must be numbers",
            detail={"lng": str(lng), "lat": str(lat)},
        ) from e

    if not (math.isfinite(lng_f) and math.isfinite(lat_f)):
        raise InvalidCoordinates("Coordinates must be finite", detail={"lng": str(lng), "lat": str(lat)})
    if not -180.0 <= lng_f <= 180.0 or not -90.0 <= lat_f <= 90.0:
        raise InvalidCoordinates(
            "Coordinates out of range (lng -180..180, lat -90..90)",
            detail={"lng": lng_f, "lat": lat_f},
        )
    return lng_f, lat_f


async def find_nearby(
    backend: StoreBackend,
    lng: object,
    lat: object,
    max_distance_m: float = NEARBY_MAX_DISTANCE_M,
    limit: int = NEARBY_LIMIT,
) -> list[StoreRecord]:
    """Get stores near a point.

    Args:
        backend: Storage backend.
        lng: Longitude (anything float() accepts).
        lat: Latitude (anything float() accepts).
        max_distance_m: Cutoff radius in metres.
        limit: Maximum number of stores.

    Returns:
        Stores ordered nearest first.
    """
    lng_f, lat_f = parse_coordinates(lng, lat)
    hits = await backend.geo_near(lng_f, lat_f, max_distance_m, limit)
    hits = [hit for hit in hits if hit[1] <= max_distance_m]
    hits.sort(key=lambda hit: (hit[1], hit[0].id))
    return [store for store, _ in hits[:limit]]
