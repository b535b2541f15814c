"""
Great-circle distance utilities.

Event clustering works in feet on a spherical earth; positions are WGS84
lat/lon in degrees.
"""

from typing import Optional

import numpy as np
from numpy.typing import NDArray

EARTH_RADIUS_M = 6371000.0   # Earth's mean radius in meters
FEET_PER_METER = 3.28084


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate great-circle distance between two points.

    Args:
        lat1, lon1: First point coordinates in degrees
        lat2, lon2: Second point coordinates in degrees

    Returns:
        Distance in meters
    """
    lat1_rad = np.radians(lat1)
    lat2_rad = np.radians(lat2)
    dlat = np.radians(lat2 - lat1)
    dlon = np.radians(lon2 - lon1)

    a = np.sin(dlat/2)**2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon/2)**2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1-a))

    return float(EARTH_RADIUS_M * c)


def distance_in_feet(a: Optional[object], b: Optional[object]) -> float:
    """
    Distance in feet between two objects exposing ``latitude``/``longitude``.

    A missing point is infinitely far away.
    """
    if a is None or b is None:
        return float("inf")
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude) * FEET_PER_METER


def distances_in_feet(
    lat0: float,
    lon0: float,
    lat: NDArray[np.float64],
    lon: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Vectorized distance in feet from one point to many."""
    lat1_rad = np.radians(lat0)
    lat2_rad = np.radians(lat)
    dlat = np.radians(lat - lat0)
    dlon = np.radians(lon - lon0)

    a = np.sin(dlat/2)**2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon/2)**2
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1-a))

    return EARTH_RADIUS_M * c * FEET_PER_METER
