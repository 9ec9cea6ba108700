"""
Mode Manager Module
===================

Owns the autopilot state and the operator command contract.

Two modes, no others:
    HEADING_HOLD (BOD): steer a magnetic heading target
    TRACK_HOLD (APB):   hold a rhumb line captured from the current fix

All commands are synchronous. Each one reads the current fused status
and mutates state under a single lock, so a command such as hold_rhumb
appears atomic to the output scheduler. A command whose preconditions
fail is a silent no-op: the caller just gets the unchanged state back.
"""

import copy
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Optional
import logging

from ..sensors.navigation_fusion import (
    FusedStatus, Position, magnetic_to_true, to_number, wrap360
)

logger = logging.getLogger(__name__)

NUDGE_STEPS = (-10, -1, 1, 10)

DEFAULT_TRACK_NAME = "RHUMB"


class AutopilotMode(Enum):
    """Autopilot operating modes (value is the sentence they emit)."""
    HEADING_HOLD = "BOD"
    TRACK_HOLD = "APB"

    @classmethod
    def parse(cls, value: Any, default: "AutopilotMode") -> "AutopilotMode":
        """Accept a mode, its name, or its sentence type; else default."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().upper()
        for mode in cls:
            if text in (mode.value, mode.name):
                return mode
        return default


@dataclass
class TrackState:
    """Rhumb-line track definition. Active iff start and bearing are set."""
    active: bool = False
    start_position: Optional[Position] = None
    bearing_mag_deg: Optional[float] = None
    bearing_true_deg: Optional[float] = None
    name: str = DEFAULT_TRACK_NAME

    def clear(self):
        self.active = False
        self.start_position = None
        self.bearing_mag_deg = None
        self.bearing_true_deg = None


@dataclass
class AutopilotState:
    """Autopilot state. One instance per running process, never persisted."""
    enabled: bool = False
    mode: AutopilotMode = AutopilotMode.HEADING_HOLD
    target_heading_mag_deg: Optional[float] = None
    track: TrackState = field(default_factory=TrackState)

    def copy(self) -> "AutopilotState":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        start = self.track.start_position
        return {
            "enabled": self.enabled,
            "mode": self.mode.value,
            "targetMagDeg": self.target_heading_mag_deg,
            "trackActive": self.track.active,
            "trackStart": start.to_dict() if start else None,
            "trackBearingMagDeg": self.track.bearing_mag_deg,
            "trackBearingTrueDeg": self.track.bearing_true_deg,
            "trackName": self.track.name
        }


class ModeManager:
    """
    Autopilot state machine and command handler.

    Commands:
    - enable / disable: gate all output
    - set_mode: switch BOD/APB without touching targets
    - hold_heading / set_heading / clear_heading: heading hold target
    - hold_rhumb / stop_track: capture or drop the rhumb line
    - nudge: ±1 / ±10 on whichever target the active mode uses
    """

    def __init__(self,
                 status_fn: Callable[[], FusedStatus],
                 enabled: bool = False,
                 mode: AutopilotMode = AutopilotMode.HEADING_HOLD):
        """
        Args:
            status_fn: Returns the current fused navigation status
            enabled: Initial output enable
            mode: Initial mode
        """
        self._status_fn = status_fn
        self._state = AutopilotState(enabled=enabled, mode=mode)
        self._lock = threading.RLock()
        self._callbacks: list[Callable[[AutopilotState], None]] = []

        self._commands: dict[str, Callable[..., AutopilotState]] = {
            "enable": lambda v: self.enable(),
            "disable": lambda v: self.disable(),
            "mode_bod": lambda v: self.set_mode(AutopilotMode.HEADING_HOLD),
            "mode_apb": lambda v: self.set_mode(AutopilotMode.TRACK_HOLD),
            "hold_heading": lambda v: self.hold_heading(),
            "set_heading": lambda v: self.set_heading(v),
            "clear_heading": lambda v: self.clear_heading(),
            "hold_rhumb": lambda v: self.hold_rhumb(),
            "stop_track": lambda v: self.stop_track(),
            "p1": lambda v: self.nudge(1),
            "m1": lambda v: self.nudge(-1),
            "p10": lambda v: self.nudge(10),
            "m10": lambda v: self.nudge(-10),
        }

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    @contextmanager
    def locked(self) -> Iterator[AutopilotState]:
        """Hold the state lock; yields the live state (do not keep it)."""
        with self._lock:
            yield self._state

    def snapshot(self) -> AutopilotState:
        """Get a copy of the current state."""
        with self._lock:
            return self._state.copy()

    def add_callback(self, callback: Callable[[AutopilotState], None]):
        """Register callback for mode changes."""
        self._callbacks.append(callback)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def handle_command(self, command: str, value: Any = None) -> AutopilotState:
        """
        Dispatch a command by name (the names the control page sends).

        Unknown commands are ignored.
        """
        handler = self._commands.get(str(command or ""))
        if handler is None:
            logger.debug(f"Ignoring unknown command {command!r}")
            return self.snapshot()
        return handler(value)

    def enable(self) -> AutopilotState:
        with self._lock:
            if not self._state.enabled:
                logger.info("Output enabled")
            self._state.enabled = True
            return self._state.copy()

    def disable(self) -> AutopilotState:
        with self._lock:
            if self._state.enabled:
                logger.info("Output disabled")
            self._state.enabled = False
            return self._state.copy()

    def set_mode(self, mode: AutopilotMode) -> AutopilotState:
        """Set mode only; targets of either mode are left as they are."""
        with self._lock:
            self._change_mode(mode)
            return self._state.copy()

    def hold_heading(self) -> AutopilotState:
        """Take the current magnetic heading as the heading target."""
        with self._lock:
            status = self._status_fn()
            if status.heading_mag_deg is None:
                logger.debug("hold_heading ignored: no magnetic heading")
                return self._state.copy()
            self._engage_heading(status.heading_mag_deg)
            return self._state.copy()

    def set_heading(self, value: Any) -> AutopilotState:
        """Set an explicit magnetic heading target (wrapped to 0-360)."""
        heading = to_number(value)
        with self._lock:
            if heading is None:
                logger.debug(f"set_heading ignored: {value!r} is not a finite number")
                return self._state.copy()
            self._engage_heading(heading)
            return self._state.copy()

    def clear_heading(self) -> AutopilotState:
        with self._lock:
            self._state.target_heading_mag_deg = None
            return self._state.copy()

    def hold_rhumb(self) -> AutopilotState:
        """
        Capture a rhumb line from the current fix.

        Needs a fresh position and a magnetic COG or heading. COG is
        preferred for the bearing, heading is the fallback.
        """
        with self._lock:
            status = self._status_fn()
            if status.position is None or not status.position_fresh:
                logger.debug("hold_rhumb ignored: no fresh position")
                return self._state.copy()

            bearing = status.cog_mag_deg
            if bearing is None:
                bearing = status.heading_mag_deg
            if bearing is None:
                logger.debug("hold_rhumb ignored: no COG or heading")
                return self._state.copy()

            track = self._state.track
            track.start_position = status.position
            track.bearing_mag_deg = wrap360(bearing)
            track.bearing_true_deg = self._true_bearing(track.bearing_mag_deg, status)
            track.active = True
            self._state.target_heading_mag_deg = None
            self._change_mode(AutopilotMode.TRACK_HOLD)

            logger.info(
                f"Track hold from {track.start_position.lat:.5f},"
                f"{track.start_position.lon:.5f} bearing {track.bearing_mag_deg:.1f}°M"
            )
            return self._state.copy()

    def stop_track(self) -> AutopilotState:
        with self._lock:
            if self._state.track.active:
                logger.info("Track hold stopped")
            self._state.track.clear()
            return self._state.copy()

    def nudge(self, delta: Any) -> AutopilotState:
        """
        Adjust the active mode's target.

        Args:
            delta: One of -10, -1, +1, +10 degrees
        """
        with self._lock:
            if isinstance(delta, bool) or delta not in NUDGE_STEPS:
                logger.debug(f"nudge ignored: unsupported step {delta!r}")
                return self._state.copy()

            state = self._state
            if state.mode == AutopilotMode.HEADING_HOLD:
                if state.target_heading_mag_deg is None:
                    return state.copy()
                state.target_heading_mag_deg = wrap360(state.target_heading_mag_deg + delta)
                logger.info(f"Heading target adjusted to {state.target_heading_mag_deg:.1f}°M")

            elif state.mode == AutopilotMode.TRACK_HOLD:
                track = state.track
                if not track.active or track.bearing_mag_deg is None:
                    return state.copy()
                status = self._status_fn()
                track.bearing_mag_deg = wrap360(track.bearing_mag_deg + delta)
                track.bearing_true_deg = self._true_bearing(track.bearing_mag_deg, status)
                logger.info(f"Track bearing adjusted to {track.bearing_mag_deg:.1f}°M")

            return state.copy()

    # -------------------------------------------------------------------------
    # Internals (caller holds the lock)
    # -------------------------------------------------------------------------

    def _engage_heading(self, heading: float):
        self._state.target_heading_mag_deg = wrap360(heading)
        self._state.track.clear()
        self._change_mode(AutopilotMode.HEADING_HOLD)
        logger.info(f"Heading hold {self._state.target_heading_mag_deg:.1f}°M")

    def _true_bearing(self, mag_deg: float, status: FusedStatus) -> Optional[float]:
        if status.variation_deg is None:
            return None
        return magnetic_to_true(mag_deg, status.variation_deg)

    def _change_mode(self, mode: AutopilotMode):
        old_mode = self._state.mode
        self._state.mode = mode
        if old_mode == mode:
            return

        logger.info(f"Mode change: {old_mode.value} → {mode.value}")

        for callback in self._callbacks:
            try:
                callback(self._state.copy())
            except Exception as e:
                logger.warning(f"Mode callback error: {e}")
