"""
Output Safety Module
====================

Decides whether a guidance sentence may be emitted this tick.

An autopilot must never be fed a target that was never set, or track
guidance computed from a stale or missing fix. When any check fails the
tick emits nothing; there is no degraded output.

Checks, in order:
    1. Output enabled
    2. Heading hold: a heading target exists
    3. Track hold: a track is active
    4. Track hold: position present and fresh
"""

from enum import IntEnum, auto
from typing import Dict
import logging

from .mode_manager import AutopilotMode, AutopilotState
from ..sensors.navigation_fusion import FusedStatus

logger = logging.getLogger(__name__)


class SuppressReason(IntEnum):
    """Why a tick emitted nothing (OK means emit)."""
    OK = 0
    DISABLED = auto()             # Output switched off
    NO_HEADING_TARGET = auto()    # Heading hold without a target
    NO_TRACK = auto()             # Track hold without an active track
    POSITION_STALE = auto()       # Track hold without a fresh fix


class OutputSafety:
    """Emission gate for the output scheduler."""

    def __init__(self):
        self._last_reason = SuppressReason.OK
        self._counts: Dict[SuppressReason, int] = {r: 0 for r in SuppressReason}

    def check(self, state: AutopilotState, status: FusedStatus) -> SuppressReason:
        """
        Evaluate the emission checks.

        Args:
            state: Autopilot state snapshot
            status: Fused navigation status for this tick

        Returns:
            SuppressReason.OK if a sentence may be emitted
        """
        reason = self._evaluate(state, status)

        self._counts[reason] += 1
        if reason != self._last_reason:
            if reason == SuppressReason.OK:
                logger.info("Output resumed")
            elif reason != SuppressReason.DISABLED:
                logger.warning(f"Output suppressed: {reason.name}")
            self._last_reason = reason

        return reason

    def _evaluate(self, state: AutopilotState, status: FusedStatus) -> SuppressReason:
        if not state.enabled:
            return SuppressReason.DISABLED

        if state.mode == AutopilotMode.HEADING_HOLD:
            if state.target_heading_mag_deg is None:
                return SuppressReason.NO_HEADING_TARGET
            return SuppressReason.OK

        track = state.track
        if not track.active or track.start_position is None or track.bearing_mag_deg is None:
            return SuppressReason.NO_TRACK
        if status.position is None or not status.position_fresh:
            return SuppressReason.POSITION_STALE
        return SuppressReason.OK

    @property
    def last_reason(self) -> SuppressReason:
        return self._last_reason

    @property
    def stats(self) -> dict:
        """Get per-reason tick counts."""
        return {reason.name.lower(): count for reason, count in self._counts.items()}
