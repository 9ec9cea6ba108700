"""
Navigation Fusion Module
========================

Derives a single best-available magnetic COG and magnetic heading from
whatever the telemetry provider currently holds.

Sources may be missing, and angles may arrive in radians (Signal K) or
degrees (other integrations). Unit detection is a fixed heuristic:
a value whose magnitude is at most 2π + 0.5 is radians, anything larger
is degrees. Values near the threshold are inherently ambiguous; the rule
is kept exactly as-is because downstream behaviour depends on it.

Fallback order:
    COG magnetic:     direct → COG true − variation → heading magnetic
    Heading magnetic: direct → heading true − variation

A missing input never turns into a number: the field is None and the
source tag is NONE.
"""

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, Protocol
import logging

from .telemetry import RawReading

logger = logging.getLogger(__name__)


# Magnitudes at or below this are treated as radians
RADIANS_THRESHOLD = math.pi * 2 + 0.5


class TelemetryProvider(Protocol):
    """Anything that can hand out the latest reading for a path."""

    def read(self, path: str) -> Optional[RawReading]:
        ...


class CogSource(Enum):
    """Where the best magnetic COG came from."""
    DIRECT = "direct"
    DERIVED_FROM_TRUE = "derived_from_true"
    FALLBACK_HEADING = "fallback_heading"   # Not a ground track, last resort
    NONE = "none"


class HeadingSource(Enum):
    """Where the best magnetic heading came from."""
    DIRECT = "direct"
    DERIVED_FROM_TRUE = "derived_from_true"
    NONE = "none"


@dataclass
class NavigationPaths:
    """Telemetry paths for each navigation input."""
    position: str = "navigation.position"
    cog_mag: str = "navigation.courseOverGroundMagnetic"
    cog_true: str = "navigation.courseOverGroundTrue"
    heading_mag: str = "navigation.headingMagnetic"
    heading_true: str = "navigation.headingTrue"
    variation: str = "navigation.magneticVariation"

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "cogMag": self.cog_mag,
            "cogTrue": self.cog_true,
            "hdgMag": self.heading_mag,
            "hdgTrue": self.heading_true,
            "variation": self.variation
        }


@dataclass(frozen=True)
class Position:
    """Geographic position in decimal degrees."""
    lat: float
    lon: float

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lon": self.lon}


@dataclass
class FusedStatus:
    """
    Best-available navigation picture at one instant.

    Recomputed on every query, never persisted. All angles are degrees
    in [0, 360) with 0.1° resolution, or None.
    """
    timestamp_ms: float = 0.0

    # Position
    position: Optional[Position] = None
    position_fresh: bool = False
    position_age_ms: Optional[float] = None

    # East-positive, wrapped like every other angle (5°W reads 355.0)
    variation_deg: Optional[float] = None

    # Best values
    cog_mag_deg: Optional[float] = None
    cog_mag_source: CogSource = CogSource.NONE
    heading_mag_deg: Optional[float] = None
    heading_mag_source: HeadingSource = HeadingSource.NONE

    # Normalized raw inputs, for diagnostics
    raw_cog_mag_deg: Optional[float] = None
    raw_cog_true_deg: Optional[float] = None
    raw_heading_mag_deg: Optional[float] = None
    raw_heading_true_deg: Optional[float] = None

    paths: NavigationPaths = field(default_factory=NavigationPaths)

    def to_dict(self) -> dict:
        """Render for the HTTP status endpoint."""
        return {
            "timestampMs": self.timestamp_ms,
            "paths": self.paths.to_dict(),
            "raw": {
                "positionAgeMs": self.position_age_ms,
                "variationDeg": self.variation_deg,
                "cogMagDeg": self.raw_cog_mag_deg,
                "cogTrueDeg": self.raw_cog_true_deg,
                "hdgMagDeg": self.raw_heading_mag_deg,
                "hdgTrueDeg": self.raw_heading_true_deg
            },
            "best": {
                "position": self.position.to_dict() if self.position else None,
                "positionFresh": self.position_fresh,
                "variationDeg": self.variation_deg,
                "cogMagDeg": self.cog_mag_deg,
                "cogMagSource": self.cog_mag_source.value,
                "headingMagDeg": self.heading_mag_deg,
                "headingMagSource": self.heading_mag_source.value
            }
        }


def wrap360(deg: float) -> float:
    """
    Reduce an angle to [0, 360) and round to the nearest 0.1°.

    Halves round up. A value that rounds to 360.0 is reported as 0.0.
    """
    d = deg % 360.0
    d = math.floor(d * 10.0 + 0.5) / 10.0
    if d >= 360.0:
        d = 0.0
    return d


def to_number(value: Any) -> Optional[float]:
    """Coerce a raw telemetry value to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(num):
        return None
    return num


def normalize_angle(value: Any) -> Optional[float]:
    """
    Classify a raw reading as radians or degrees and return degrees.

    Args:
        value: Raw numeric reading (radians or degrees)

    Returns:
        Degrees in [0, 360), or None if the value is not a usable number
    """
    num = to_number(value)
    if num is None:
        return None
    deg = math.degrees(num) if abs(num) <= RADIANS_THRESHOLD else num
    return wrap360(deg)


def true_to_magnetic(true_deg: float, variation_deg: float) -> float:
    """Magnetic = True − Variation (east-positive)."""
    return wrap360(true_deg - variation_deg)


def magnetic_to_true(mag_deg: float, variation_deg: float) -> float:
    """True = Magnetic + Variation (east-positive)."""
    return wrap360(mag_deg + variation_deg)


def _read_angle(provider: TelemetryProvider, path: str) -> Optional[float]:
    reading = provider.read(path)
    if reading is None:
        return None
    return normalize_angle(reading.value)


def _read_position(provider: TelemetryProvider, path: str):
    reading = provider.read(path)
    if reading is None or not isinstance(reading.value, Mapping):
        return None, None
    lat = to_number(reading.value.get("latitude"))
    lon = to_number(reading.value.get("longitude"))
    if lat is None or lon is None:
        return None, None
    return Position(lat=lat, lon=lon), to_number(reading.timestamp_ms)


def fuse(provider: TelemetryProvider,
         paths: Optional[NavigationPaths] = None,
         stale_seconds: float = 5.0,
         now_ms: Optional[float] = None) -> FusedStatus:
    """
    Compute the best-available navigation status.

    Pure function of the provider's current contents.

    Args:
        provider: Telemetry provider with read(path)
        paths: Paths to read (Signal K defaults if None)
        stale_seconds: Maximum position age to count as fresh
        now_ms: Current epoch milliseconds (wall clock if None)

    Returns:
        FusedStatus snapshot
    """
    paths = paths or NavigationPaths()
    if now_ms is None:
        now_ms = time.time() * 1000.0

    status = FusedStatus(timestamp_ms=now_ms, paths=paths)

    position, pos_ts = _read_position(provider, paths.position)
    status.position = position
    if position is not None and pos_ts is not None:
        status.position_age_ms = now_ms - pos_ts
        status.position_fresh = status.position_age_ms <= stale_seconds * 1000.0

    variation = _read_angle(provider, paths.variation)
    cog_mag = _read_angle(provider, paths.cog_mag)
    cog_true = _read_angle(provider, paths.cog_true)
    hdg_mag = _read_angle(provider, paths.heading_mag)
    hdg_true = _read_angle(provider, paths.heading_true)

    status.variation_deg = variation
    status.raw_cog_mag_deg = cog_mag
    status.raw_cog_true_deg = cog_true
    status.raw_heading_mag_deg = hdg_mag
    status.raw_heading_true_deg = hdg_true

    # Best COG magnetic
    if cog_mag is not None:
        status.cog_mag_deg = cog_mag
        status.cog_mag_source = CogSource.DIRECT
    elif cog_true is not None and variation is not None:
        status.cog_mag_deg = true_to_magnetic(cog_true, variation)
        status.cog_mag_source = CogSource.DERIVED_FROM_TRUE
    elif hdg_mag is not None:
        status.cog_mag_deg = hdg_mag
        status.cog_mag_source = CogSource.FALLBACK_HEADING

    # Best heading magnetic
    if hdg_mag is not None:
        status.heading_mag_deg = hdg_mag
        status.heading_mag_source = HeadingSource.DIRECT
    elif hdg_true is not None and variation is not None:
        status.heading_mag_deg = true_to_magnetic(hdg_true, variation)
        status.heading_mag_source = HeadingSource.DERIVED_FROM_TRUE

    return status
