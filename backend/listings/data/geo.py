"""
Haversine distance and display formatting for service listings.
"""
import math
from typing import NamedTuple

# Earth radius in km (mean radius)
EARTH_RADIUS_KM = 6371.0

# Jeffreys Bay town center; default map center and service-area anchor
DEFAULT_CENTER = (-34.0489, 24.9087)
SERVICE_AREA_TOLERANCE_DEG = 0.3


class Coordinates(NamedTuple):
    lat: float
    lng: float


def haversine_distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Return great-circle distance between two points in kilometers.
    Arguments in degrees.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def calculate_distance(a: Coordinates, b: Coordinates) -> float:
    """Distance in km between two coordinate pairs. Coordinates are not range-checked."""
    return haversine_distance_km(a.lat, a.lng, b.lat, b.lng)


def format_distance(distance_km: float) -> str:
    """
    Human-readable distance: whole meters below 1 km ("850m"),
    otherwise kilometers with one decimal ("3.2km").
    """
    if distance_km < 1:
        # Round half up (round() would round half to even)
        meters = math.floor(distance_km * 1000 + 0.5)
        return f"{meters}m"
    return f"{distance_km:.1f}km"


def is_within_service_area(point: Coordinates) -> bool:
    center_lat, center_lng = DEFAULT_CENTER
    return (
        abs(point.lat - center_lat) < SERVICE_AREA_TOLERANCE_DEG
        and abs(point.lng - center_lng) < SERVICE_AREA_TOLERANCE_DEG
    )
