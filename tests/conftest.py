"""
Shared test fixtures for autopilot output unit tests.
"""

import math
import time
import pytest

from hts_autopilot.sensors.telemetry import TelemetryStore
from hts_autopilot.sensors.navigation_fusion import NavigationPaths, fuse
from hts_autopilot.control.mode_manager import ModeManager


class RecordingSink:
    """Sink that keeps every sentence it receives."""

    def __init__(self):
        self.sentences = []
        self.closed = False

    def emit(self, sentence):
        self.sentences.append(sentence)

    def close(self):
        self.closed = True


def now_ms():
    return time.time() * 1000.0


@pytest.fixture
def paths():
    """Default Signal K navigation paths."""
    return NavigationPaths()


@pytest.fixture
def store():
    """Empty telemetry store."""
    return TelemetryStore()


@pytest.fixture
def nav_store(store, paths):
    """
    Store with a full, fresh navigation picture (Signal K radians).

    Position 50N 1W, COG mag 090, heading mag 085, variation 2E.
    """
    store.update(paths.position, {"latitude": 50.0, "longitude": -1.0}, now_ms())
    store.update(paths.cog_mag, math.radians(90.0), now_ms())
    store.update(paths.heading_mag, math.radians(85.0), now_ms())
    store.update(paths.variation, math.radians(2.0), now_ms())
    return store


def make_mode_manager(provider, paths=None, stale_seconds=5.0, **kwargs):
    """ModeManager reading fused status from a provider."""
    return ModeManager(
        status_fn=lambda: fuse(provider, paths or NavigationPaths(), stale_seconds),
        **kwargs
    )


@pytest.fixture
def mode_manager(nav_store, paths):
    """Mode manager over the full navigation picture."""
    return make_mode_manager(nav_store, paths)


@pytest.fixture
def sink():
    """Recording sentence sink."""
    return RecordingSink()
