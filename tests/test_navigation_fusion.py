"""
Unit tests for Navigation Fusion module.

Tests unit normalization, angle wrapping, best-available COG/heading
fallback order and position freshness.
"""

import math
import pytest

from hts_autopilot.sensors.telemetry import TelemetryStore, RawReading
from hts_autopilot.sensors.navigation_fusion import (
    CogSource, HeadingSource, NavigationPaths, Position, RADIANS_THRESHOLD,
    fuse, magnetic_to_true, normalize_angle, to_number, true_to_magnetic, wrap360
)

NOW_MS = 1_700_000_000_000.0


class TestWrap360:
    """Tests for wrap360."""

    @pytest.mark.parametrize("angle", [-725.3, -360.0, -0.04, 0.0, 0.05, 12.34, 359.94, 359.96, 360.0, 1000.0])
    def test_idempotent_and_in_range(self, angle):
        """Wrapping twice equals wrapping once, result in [0, 360)."""
        once = wrap360(angle)

        assert wrap360(once) == once
        assert 0.0 <= once < 360.0

    def test_negative_wraps(self):
        """Negative angles wrap around."""
        assert wrap360(-10.0) == 350.0
        assert wrap360(-370.0) == 350.0

    def test_over_360_wraps(self):
        """Angles over 360 wrap around."""
        assert wrap360(400.0) == 40.0
        assert wrap360(720.0) == 0.0

    def test_rounds_to_tenth(self):
        """Result is rounded to 0.1°."""
        assert wrap360(83.44) == 83.4
        assert wrap360(83.46) == 83.5

    def test_rounding_up_to_360_is_zero(self):
        """A value just below 360 that rounds up reports 0.0."""
        assert wrap360(359.97) == 0.0
        assert wrap360(-0.01) == 0.0


class TestNormalizeAngle:
    """Tests for the radians/degrees heuristic."""

    def test_small_value_is_radians(self):
        """1.0 is radians → 57.3°."""
        assert normalize_angle(1.0) == 57.3

    def test_large_value_is_degrees(self):
        """57.3 is degrees."""
        assert normalize_angle(57.3) == 57.3

    def test_threshold_is_radians(self):
        """A value exactly at 2π + 0.5 is still radians."""
        expected = wrap360(math.degrees(RADIANS_THRESHOLD))

        assert normalize_angle(RADIANS_THRESHOLD) == expected

    def test_just_above_threshold_is_degrees(self):
        """A value just above the threshold is degrees."""
        assert normalize_angle(6.9) == 6.9

    def test_negative_radians(self):
        """Negative radians convert and wrap (westerly variation)."""
        assert normalize_angle(math.radians(-5.0)) == 355.0

    def test_negative_degrees(self):
        """Negative degrees beyond the threshold wrap."""
        assert normalize_angle(-10.0) == 350.0

    @pytest.mark.parametrize("value", [None, "abc", {"a": 1}, float("nan"), float("inf"), True])
    def test_unusable_values(self, value):
        """Non-numeric or non-finite values give None."""
        assert normalize_angle(value) is None

    def test_numeric_string(self):
        """Numeric strings are accepted."""
        assert normalize_angle("90") == 90.0


class TestConversions:
    """Tests for true/magnetic conversion."""

    def test_true_to_magnetic_east_variation(self):
        """Mag = True - Var (east positive)."""
        assert true_to_magnetic(90.0, 5.0) == 85.0

    def test_magnetic_to_true_wraps(self):
        """True = Mag + Var wraps through north."""
        assert magnetic_to_true(358.0, 5.0) == 3.0

    def test_wrapped_west_variation_equivalent(self):
        """5°W stored as 355.0 gives the same result as -5."""
        assert true_to_magnetic(90.0, 355.0) == true_to_magnetic(90.0, -5.0) == 95.0

    def test_to_number_rejects_bool(self):
        """Booleans are not numbers here."""
        assert to_number(False) is None

    def test_to_number_huge_int(self):
        """Integers too large for a float are unusable."""
        assert to_number(10**400) is None
        assert normalize_angle(10**400) is None


class TestCogFallback:
    """Tests for best-available magnetic COG."""

    def test_direct_magnetic(self, store, paths):
        """Direct magnetic COG wins."""
        store.update(paths.cog_mag, 100.0, NOW_MS)
        store.update(paths.cog_true, 90.0, NOW_MS)
        store.update(paths.variation, 5.0 * math.pi / 180, NOW_MS)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.cog_mag_deg == 100.0
        assert status.cog_mag_source == CogSource.DIRECT

    def test_derived_from_true(self, store, paths):
        """True COG 090 with variation 5E → 085 magnetic."""
        store.update(paths.cog_true, 90.0, NOW_MS)
        store.update(paths.variation, math.radians(5.0), NOW_MS)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.cog_mag_deg == 85.0
        assert status.cog_mag_source == CogSource.DERIVED_FROM_TRUE

    def test_true_without_variation_falls_to_heading(self, store, paths):
        """True COG is unusable without variation; heading is the fallback."""
        store.update(paths.cog_true, 90.0, NOW_MS)
        store.update(paths.heading_mag, 120.0, NOW_MS)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.cog_mag_deg == 120.0
        assert status.cog_mag_source == CogSource.FALLBACK_HEADING

    def test_derived_heading_not_used_for_cog(self, store, paths):
        """Only a direct magnetic heading can stand in for COG."""
        store.update(paths.heading_true, 120.0, NOW_MS)
        store.update(paths.variation, math.radians(5.0), NOW_MS)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.cog_mag_deg is None
        assert status.cog_mag_source == CogSource.NONE
        assert status.heading_mag_deg == 115.0

    def test_nothing_available(self, store, paths):
        """No inputs gives None with NONE tags."""
        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.cog_mag_deg is None
        assert status.cog_mag_source == CogSource.NONE
        assert status.heading_mag_deg is None
        assert status.heading_mag_source == HeadingSource.NONE
        assert status.variation_deg is None
        assert status.position is None
        assert status.position_fresh is False


class TestHeadingFallback:
    """Tests for best-available magnetic heading."""

    def test_direct_magnetic(self, store, paths):
        """Direct magnetic heading wins."""
        store.update(paths.heading_mag, math.radians(45.0), NOW_MS)
        store.update(paths.heading_true, math.radians(50.0), NOW_MS)
        store.update(paths.variation, math.radians(5.0), NOW_MS)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.heading_mag_deg == 45.0
        assert status.heading_mag_source == HeadingSource.DIRECT

    def test_derived_from_true(self, store, paths):
        """True heading minus variation."""
        store.update(paths.heading_true, math.radians(3.0), NOW_MS)
        store.update(paths.variation, math.radians(-5.0), NOW_MS)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.heading_mag_deg == 8.0
        assert status.heading_mag_source == HeadingSource.DERIVED_FROM_TRUE

    def test_true_without_variation(self, store, paths):
        """No further fallback without variation."""
        store.update(paths.heading_true, 50.0, NOW_MS)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.heading_mag_deg is None
        assert status.heading_mag_source == HeadingSource.NONE

    def test_non_numeric_value_is_missing(self, store, paths):
        """A non-numeric reading is treated as absent."""
        store.update(paths.heading_mag, "n/a", NOW_MS)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.heading_mag_deg is None

    def test_huge_int_value_is_missing(self, store, paths):
        """An integer reading beyond float range is treated as absent."""
        store.update(paths.heading_mag, 10**400, NOW_MS)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.heading_mag_deg is None
        assert status.heading_mag_source == HeadingSource.NONE


class TestPosition:
    """Tests for position reading and freshness."""

    def test_fresh_position(self, store, paths):
        """Position within the stale window is fresh."""
        store.update(paths.position, {"latitude": 50.1, "longitude": -1.2}, NOW_MS - 4000)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.position == Position(lat=50.1, lon=-1.2)
        assert status.position_fresh is True
        assert status.position_age_ms == 4000

    def test_boundary_is_fresh(self, store, paths):
        """Age exactly at the threshold is still fresh."""
        store.update(paths.position, {"latitude": 50.1, "longitude": -1.2}, NOW_MS - 5000)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.position_fresh is True

    def test_stale_position(self, store, paths):
        """Old position is kept but not fresh."""
        store.update(paths.position, {"latitude": 50.1, "longitude": -1.2}, NOW_MS - 5001)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.position is not None
        assert status.position_fresh is False

    def test_missing_timestamp_not_fresh(self, store, paths):
        """Without a timestamp a position is never fresh."""
        store.update(paths.position, {"latitude": 50.1, "longitude": -1.2}, stamp=False)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.position is not None
        assert status.position_fresh is False
        assert status.position_age_ms is None

    @pytest.mark.parametrize("value", [
        None, 42.0, {"latitude": 50.0}, {"latitude": "x", "longitude": 1.0},
        {"latitude": float("nan"), "longitude": 1.0}
    ])
    def test_malformed_position(self, store, paths, value):
        """Malformed position values give no position."""
        store.update(paths.position, value, NOW_MS)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.position is None
        assert status.position_fresh is False


class TestFusedStatus:
    """Tests for status rendering and path overrides."""

    def test_custom_paths(self):
        """Overridden paths are read instead of the defaults."""
        store = TelemetryStore()
        paths = NavigationPaths(heading_mag="custom.heading")
        store.update("custom.heading", 200.0, NOW_MS)
        store.update("navigation.headingMagnetic", 100.0, NOW_MS)

        status = fuse(store, paths, 5, now_ms=NOW_MS)

        assert status.heading_mag_deg == 200.0

    def test_plain_provider(self):
        """Any object with read(path) works as a provider."""
        class Provider:
            def read(self, path):
                if path == "navigation.headingMagnetic":
                    return RawReading(value=math.radians(10.0), timestamp_ms=NOW_MS)
                return None

        status = fuse(Provider(), now_ms=NOW_MS)

        assert status.heading_mag_deg == 10.0

    def test_to_dict(self, nav_store, paths):
        """Status renders with best and raw sections."""
        data = fuse(nav_store, paths, 5).to_dict()

        assert data["best"]["cogMagDeg"] == 90.0
        assert data["best"]["cogMagSource"] == "direct"
        assert data["best"]["headingMagDeg"] == 85.0
        assert data["best"]["positionFresh"] is True
        assert data["best"]["position"] == {"lat": 50.0, "lon": -1.0}
        assert data["raw"]["variationDeg"] == 2.0
        assert data["paths"]["hdgMag"] == "navigation.headingMagnetic"
