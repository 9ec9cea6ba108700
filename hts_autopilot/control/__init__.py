"""
Control System Modules
======================

This package contains the guidance side of the autopilot output.

Components:
    - ModeManager: Autopilot state machine and operator commands
    - OutputSafety: Per-tick emission gate
    - OutputScheduler: Periodic BOD/APB emitter
    - cross_track: Rhumb-line cross-track error
"""

from .mode_manager import (
    ModeManager,
    AutopilotMode,
    AutopilotState,
    TrackState,
)

from .safety import (
    OutputSafety,
    SuppressReason,
)

from .track_geometry import (
    cross_track,
    CrossTrack,
)

from .output_scheduler import (
    OutputScheduler,
    TickResult,
    period_for_rate,
)

__all__ = [
    'ModeManager',
    'AutopilotMode',
    'AutopilotState',
    'TrackState',
    'OutputSafety',
    'SuppressReason',
    'cross_track',
    'CrossTrack',
    'OutputScheduler',
    'TickResult',
    'period_for_rate',
]
