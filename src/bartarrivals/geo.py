"""Distance helpers for nearest-station lookup."""

import math
from typing import Iterable, Optional, Tuple

from .models import Station

EARTH_RADIUS_METERS = 6371000.0


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates, in meters (haversine)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(a)))


def nearest_station(
    latitude: float,
    longitude: float,
    stations: Iterable[Station],
) -> Optional[Tuple[Station, float]]:
    """
    Find the station closest to a coordinate.

    Args:
        latitude: Latitude of the location.
        longitude: Longitude of the location.
        stations: Candidate stations, in stable order.

    Returns:
        (station, distance_in_meters), or None if there are no stations.
        On an exact tie the station that comes first wins.
    """
    best: Optional[Station] = None
    best_distance = math.inf

    for station in stations:
        d = distance_meters(latitude, longitude, station.latitude, station.longitude)
        if d < best_distance:
            best = station
            best_distance = d

    if best is None:
        return None
    return best, best_distance
