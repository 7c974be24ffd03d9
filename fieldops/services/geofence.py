"""
Site distance checks.
Uses Haversine formula to calculate distance between the device position and
the catalog coordinates of the selected site.
"""
import math
from typing import Any, Mapping, Optional, Tuple
from ..config import settings


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points on Earth.

    Returns:
        Distance in meters
    """
    # Earth radius in meters
    R = 6371000

    # Convert to radians
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    # Haversine formula
    a = (
        math.sin(delta_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return R * c


def distance_from_site(record: Mapping[str, Any]) -> Optional[float]:
    """
    Distance between the device pair (latitude/longitude) and the catalog pair
    (location_latitude/location_longitude). None when either pair is incomplete.
    """
    try:
        device = (float(record["latitude"]), float(record["longitude"]))
        site = (float(record["location_latitude"]), float(record["location_longitude"]))
    except (KeyError, TypeError, ValueError):
        return None
    return haversine_distance(device[0], device[1], site[0], site[1])


def check_site_distance(record: Mapping[str, Any], radius_m: Optional[float] = None) -> Tuple[Optional[float], bool]:
    """
    Returns (distance_m, is_far). is_far is True when the device is farther than
    the radius from the site.
    """
    distance = distance_from_site(record)
    if distance is None:
        return None, False
    radius = float(radius_m if radius_m is not None else settings.geo_radius_m_default)
    return distance, distance > radius
