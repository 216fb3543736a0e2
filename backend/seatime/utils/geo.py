"""Coordinate helpers shared by the sea-time policies.

The movement analyzer works in raw degrees; these helpers only
feed the informational distance_nm column on sea-time entries.
"""
from __future__ import annotations

import math

_EARTH_RADIUS_NM: float = 3440.065   # Earth mean radius in nautical miles


def haversine_nm(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in nautical miles between two WGS-84 coordinates."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    return _EARTH_RADIUS_NM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_between_nm(
    start_lat: float | None,
    start_lon: float | None,
    end_lat: float | None,
    end_lon: float | None,
) -> float | None:
    """Rounded haversine distance, or None when either endpoint lacks a fix."""
    if None in (start_lat, start_lon, end_lat, end_lon):
        return None
    return round(haversine_nm(start_lat, start_lon, end_lat, end_lon), 2)


def degree_delta(a: float, b: float) -> float:
    """Absolute coordinate difference at the 6-decimal storage precision of a fix.

    Without the rounding, 50.1 - 50.0 evaluates to 0.10000000000000142 and a
    displacement of exactly 0.1° would read as "greater than 0.1°".
    """
    return round(abs(b - a), 6)
