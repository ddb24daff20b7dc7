# file: station_finder/distance.py

import math
from typing import Iterable, Tuple

from station_finder.errors import NoCandidates
from station_finder.models import Station

EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometers (haversine)."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    # rounding can push a just above 1 for near-antipodal points
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def nearest(lat: float, lon: float, stations: Iterable[Station]) -> Tuple[Station, float]:
    """Return the station closest to (lat, lon) with its distance; ties go to the first one seen."""
    closest = None
    min_dist = math.inf
    for station in stations:
        dist = distance_km(lat, lon, station.lat, station.lon)
        if closest is None or dist < min_dist:
            closest, min_dist = station, dist
    if closest is None:
        raise NoCandidates("Cannot pick the nearest station from an empty station set")
    return closest, min_dist
