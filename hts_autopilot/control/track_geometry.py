"""
Track Geometry Module
=====================

Cross-track error from a rhumb line, using a local tangent-plane
(flat-Earth) approximation around the track start point. Good for the
short-to-medium legs a "hold this line" command produces.
"""

import math
from dataclasses import dataclass

from ..sensors.navigation_fusion import Position
from ..nmea0183.sentences import MAX_XTE_NM

# Mean Earth radius (m)
EARTH_RADIUS_M = 6371000.0

METERS_PER_NM = 1852.0


@dataclass(frozen=True)
class CrossTrack:
    """Cross-track error result."""
    distance_nm: float    # Saturated at MAX_XTE_NM, 2 decimals
    side: str             # 'L' or 'R' of track
    signed_m: float       # Unclamped, positive = right of track


def local_offsets_m(start: Position, current: Position) -> tuple[float, float]:
    """
    North/east offset of current from start, in meters.

    Longitude scale is taken at the start latitude.
    """
    lat0 = math.radians(start.lat)
    d_lat = math.radians(current.lat - start.lat)
    d_lon = math.radians(current.lon - start.lon)

    north = d_lat * EARTH_RADIUS_M
    east = d_lon * EARTH_RADIUS_M * math.cos(lat0)
    return north, east


def cross_track(start: Position, current: Position, bearing_mag_deg: float) -> CrossTrack:
    """
    Compute cross-track distance and side.

    Args:
        start: Track start point
        current: Current vessel position
        bearing_mag_deg: Track bearing, clockwise from north

    Returns:
        CrossTrack with distance in nm (clamped to 9.99) and side.
        Exactly zero counts as right of track.
    """
    north, east = local_offsets_m(start, current)
    theta = math.radians(bearing_mag_deg)

    xte_m = -math.sin(theta) * east + math.cos(theta) * north

    nm = min(abs(xte_m) / METERS_PER_NM, MAX_XTE_NM)
    side = "R" if xte_m >= 0 else "L"

    return CrossTrack(distance_nm=round(nm, 2), side=side, signed_m=xte_m)
