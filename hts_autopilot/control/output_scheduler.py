"""
Output Scheduler Module
=======================

Fires at the configured rate and emits at most one guidance sentence
per tick:

    HEADING_HOLD → BOD with the heading target
    TRACK_HOLD   → APB with cross-track error to the held rhumb line

Status, state and the safety decision are all taken under the mode
manager's lock, so a tick never sees a half-applied command. The sink
hand-off happens outside the lock.
"""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional
import logging

from .mode_manager import AutopilotMode, AutopilotState, ModeManager
from .safety import OutputSafety, SuppressReason
from .track_geometry import cross_track
from ..nmea0183.sentences import build_apb, build_bod, sanitize_talker
from ..nmea0183.sinks import SentenceSink
from ..sensors.navigation_fusion import FusedStatus, magnetic_to_true

logger = logging.getLogger(__name__)

# Shortest allowed tick period (s), caps the rate at 10 Hz
MIN_PERIOD_S = 0.1

BOD_DEST = "DEST"
BOD_ORIG = "ORIG"


def period_for_rate(rate_hz: float) -> float:
    """Tick period in seconds for a rate, rounded to ms, never below 100 ms."""
    if not rate_hz or rate_hz <= 0:
        rate_hz = 1.0
    return max(MIN_PERIOD_S, round(1000.0 / rate_hz) / 1000.0)


@dataclass
class TickResult:
    """Outcome of one scheduler tick."""
    sentence: Optional[str]
    reason: SuppressReason
    status: FusedStatus


class OutputScheduler:
    """
    Periodic sentence emitter.

    Runs on its own thread; stop() sets a cancellation event and joins,
    so no tick runs after stop() returns. start() on a running scheduler
    replaces the previous thread rather than adding a second one.
    """

    def __init__(self,
                 mode_manager: ModeManager,
                 status_fn: Callable[[], FusedStatus],
                 sink: SentenceSink,
                 talker: str = "II",
                 rate_hz: float = 1.0):
        """
        Args:
            mode_manager: Owner of the autopilot state
            status_fn: Returns the current fused navigation status
            sink: Destination for finished sentences
            talker: NMEA talker ID
            rate_hz: Output rate
        """
        self.mode_manager = mode_manager
        self.sink = sink
        self.talker = sanitize_talker(talker)
        self.period_s = period_for_rate(rate_hz)
        self.safety = OutputSafety()

        self._status_fn = status_fn
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._start_stop_lock = threading.Lock()
        self._debug_lock = threading.Lock()

        # Observability
        self._last_sentence: Optional[str] = None
        self._last_emit_ts: Optional[str] = None
        self._last_status: Optional[FusedStatus] = None

        # Statistics
        self._tick_count = 0
        self._emit_count = 0
        self._error_count = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self):
        """Start (or restart) the output thread."""
        with self._start_stop_lock:
            self._stop_locked()
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run, args=(self._stop_event,),
                daemon=True, name="hts-output"
            )
            self._thread.start()
        logger.info(f"Output scheduler started ({1.0 / self.period_s:.2f} Hz, talker {self.talker})")

    def stop(self, timeout: Optional[float] = None):
        """Stop the output thread and wait for it to exit."""
        with self._start_stop_lock:
            self._stop_locked(timeout)
        logger.info("Output scheduler stopped")

    def _stop_locked(self, timeout: Optional[float] = None):
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self, stop_event: threading.Event):
        next_tick = time.monotonic()
        while not stop_event.is_set():
            try:
                self.tick(stop_event)
            except Exception as e:
                self._error_count += 1
                logger.error(f"Output tick error: {e}")

            next_tick += self.period_s
            delay = next_tick - time.monotonic()
            if delay < 0:
                # Fell behind; resync instead of bursting
                next_tick = time.monotonic()
                delay = 0.0
            stop_event.wait(delay)

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def tick(self, stop_event: Optional[threading.Event] = None) -> TickResult:
        """
        Run one output cycle.

        Args:
            stop_event: If set by the time the sentence is ready, it is discarded

        Returns:
            TickResult with the emitted sentence (None if suppressed)
        """
        with self.mode_manager.locked() as live_state:
            status = self._status_fn()
            state = live_state.copy()
            reason = self.safety.check(state, status)

        self._tick_count += 1
        with self._debug_lock:
            self._last_status = status

        if reason != SuppressReason.OK:
            return TickResult(sentence=None, reason=reason, status=status)

        sentence = self.build_sentence(state, status)
        if stop_event is not None and stop_event.is_set():
            return TickResult(sentence=None, reason=reason, status=status)

        self._emit(sentence)
        return TickResult(sentence=sentence, reason=reason, status=status)

    def build_sentence(self, state: AutopilotState, status: FusedStatus) -> str:
        """Encode the sentence for a state that passed the safety checks."""
        variation = status.variation_deg

        if state.mode == AutopilotMode.HEADING_HOLD:
            target = state.target_heading_mag_deg
            true_deg = magnetic_to_true(target, variation) if variation is not None else None
            return build_bod(self.talker, true_deg, target, BOD_DEST, BOD_ORIG)

        track = state.track
        xte = cross_track(track.start_position, status.position, track.bearing_mag_deg)
        hts_mag = track.bearing_mag_deg
        hts_true = magnetic_to_true(hts_mag, variation) if variation is not None else None
        return build_apb(self.talker, xte.distance_nm, xte.side, hts_mag, hts_true, track.name)

    def _emit(self, sentence: str):
        try:
            self.sink.emit(sentence)
        except Exception as e:
            self._error_count += 1
            logger.warning(f"Sink emit error: {e}")
            return

        with self._debug_lock:
            self._last_sentence = sentence.strip()
            self._last_emit_ts = datetime.now(timezone.utc).isoformat()
        self._emit_count += 1
        logger.debug(f"Emitted {sentence.strip()}")

    # -------------------------------------------------------------------------
    # Observability
    # -------------------------------------------------------------------------

    @property
    def last_sentence(self) -> Optional[str]:
        with self._debug_lock:
            return self._last_sentence

    @property
    def last_emit_ts(self) -> Optional[str]:
        with self._debug_lock:
            return self._last_emit_ts

    @property
    def last_status(self) -> Optional[FusedStatus]:
        with self._debug_lock:
            return self._last_status

    @property
    def stats(self) -> dict:
        """Get output statistics."""
        return {
            "running": self.is_running,
            "period_s": self.period_s,
            "tick_count": self._tick_count,
            "emit_count": self._emit_count,
            "error_count": self._error_count,
            "suppress_reason": self.safety.last_reason.name.lower(),
            "suppressed": self.safety.stats
        }
