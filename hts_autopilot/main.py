"""
Main Autopilot Output Application
=================================

Main entry point that wires the telemetry source, navigation fusion,
mode manager, output scheduler, sentence sink and control page together.
"""

import argparse
import logging
import signal
import sys
import threading
from typing import Any, Optional

from .config import HTSConfig, load_config
from .control.mode_manager import AutopilotState, ModeManager
from .control.output_scheduler import OutputScheduler
from .nmea0183.sinks import CallbackSink, QueuedSink, SentenceSink, SerialSink, UdpSink
from .sensors.navigation_fusion import FusedStatus, fuse
from .sensors.nmea2000_interface import N2KConfig, NMEA2000Interface
from .sensors.telemetry import TelemetryStore
from .web.server import create_app

logger = logging.getLogger(__name__)


class HTSAutopilot:
    """
    Heading-to-steer output controller.

    Coordinates:
    - Telemetry store (and optional NMEA2000 reader feeding it)
    - Navigation fusion
    - Mode manager (operator commands)
    - Output scheduler and sentence sink
    """

    def __init__(self, config: Optional[HTSConfig] = None,
                 store: Optional[TelemetryStore] = None,
                 sink: Optional[SentenceSink] = None):
        self.config = config or HTSConfig()
        self.store = store or TelemetryStore()

        # A sink passed in belongs to the caller; one built here is closed on stop
        self._sink = sink
        self._owns_sink = sink is None
        self._n2k: Optional[NMEA2000Interface] = None

        self.mode_manager = ModeManager(
            status_fn=self.fused_status,
            enabled=self.config.enabled,
            mode=self.config.default_mode
        )
        self.scheduler: Optional[OutputScheduler] = None
        self._running = False

    def fused_status(self) -> FusedStatus:
        """Best-available navigation status right now."""
        return fuse(self.store, self.config.paths, self.config.gps_stale_seconds)

    def start(self) -> bool:
        """Initialize and start all subsystems. Restarts if already running."""
        if self._running:
            self.stop()

        logger.info("Starting autopilot output...")

        if self._sink is None:
            self._sink = self._create_sink()
            if self._sink is None:
                return False

        if self.config.can_channel:
            self._n2k = NMEA2000Interface(
                self.store, N2KConfig(channel=self.config.can_channel), self.config.paths
            )
            if not self._n2k.start():
                logger.warning("NMEA2000 failed to start, waiting for other telemetry")
                self._n2k = None

        self.scheduler = OutputScheduler(
            mode_manager=self.mode_manager,
            status_fn=self.fused_status,
            sink=self._sink,
            talker=self.config.talker,
            rate_hz=self.config.rate_hz
        )
        self.scheduler.start()

        self._running = True
        logger.info(
            f"Autopilot output running: mode={self.mode_manager.snapshot().mode.value}, "
            f"enabled={self.config.enabled}, output={self.config.output}"
        )
        return True

    def stop(self):
        """Stop all subsystems. No sentence is emitted after this returns."""
        if not self._running:
            return
        logger.info("Stopping autopilot output...")
        self._running = False

        if self.scheduler:
            self.scheduler.stop()
        if self._n2k:
            self._n2k.stop()
            self._n2k = None
        if self._owns_sink and self._sink:
            self._sink.close()
            self._sink = None

        logger.info("Autopilot output stopped")

    def _create_sink(self) -> Optional[SentenceSink]:
        """Build the configured sentence sink."""
        output = self.config.output

        if output == "serial":
            serial_sink = SerialSink(self.config.serial_port, self.config.serial_baudrate)
            if not serial_sink.open():
                logger.error("Serial output failed to start")
                return None
            return QueuedSink(serial_sink).start()

        if output == "log":
            return CallbackSink(lambda sentence: logger.info(f"OUT {sentence.strip()}"))

        try:
            udp_sink = UdpSink(self.config.udp_host, self.config.udp_port)
        except OSError as e:
            logger.error(f"UDP output failed to start: {e}")
            return None
        return QueuedSink(udp_sink).start()

    # -------------------------------------------------------------------------
    # Command / query interface
    # -------------------------------------------------------------------------

    def handle_command(self, command: str, value: Any = None) -> AutopilotState:
        """Apply an operator command by name."""
        return self.mode_manager.handle_command(command, value)

    def state_dict(self) -> dict:
        """Full state for the control page."""
        data = self.mode_manager.snapshot().to_dict()
        data["lastSentence"] = self.scheduler.last_sentence if self.scheduler else None
        data["lastEmitTs"] = self.scheduler.last_emit_ts if self.scheduler else None
        data["status"] = self.fused_status().to_dict()
        return data

    @property
    def status(self) -> dict:
        """Get current runtime statistics."""
        return {
            "running": self._running,
            "mode": self.mode_manager.snapshot().mode.value,
            "output": self.scheduler.stats if self.scheduler else None,
            "telemetry": self.store.stats,
            "n2k": self._n2k.stats if self._n2k else None
        }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="NMEA0183 heading-to-steer output (BOD heading hold, APB track hold)"
    )
    parser.add_argument("--config", "-c", default=None,
                        help="JSON config file")
    parser.add_argument("--enable", action="store_true",
                        help="Start with output enabled")
    parser.add_argument("--mode", choices=["BOD", "APB"], default=None,
                        help="Default mode")
    parser.add_argument("--rate", type=float, default=None,
                        help="Output rate in Hz (0.2-10)")
    parser.add_argument("--talker", default=None,
                        help="NMEA talker ID (2 chars)")
    parser.add_argument("--output", choices=["udp", "serial", "log"], default=None,
                        help="Sentence output")
    parser.add_argument("--udp-host", default=None,
                        help="UDP destination host")
    parser.add_argument("--udp-port", type=int, default=None,
                        help="UDP destination port")
    parser.add_argument("--serial-port", default=None,
                        help="Serial output port")
    parser.add_argument("--baudrate", type=int, default=None,
                        help="Serial output baudrate")
    parser.add_argument("--can-channel", default=None,
                        help="SocketCAN channel for NMEA2000 input (e.g. can0)")
    parser.add_argument("--host", default=None,
                        help="Control page bind host")
    parser.add_argument("--port", "-p", type=int, default=None,
                        help="Control page port")
    parser.add_argument("--no-web", action="store_true",
                        help="Run without the control page")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Verbose logging")
    return parser


def config_from_args(args: argparse.Namespace) -> HTSConfig:
    """Load the config file and apply command-line overrides."""
    options = load_config(args.config).to_dict()

    overrides = {
        "enabled": True if args.enable else None,
        "defaultMode": args.mode,
        "rateHz": args.rate,
        "talker": args.talker,
        "output": args.output,
        "udp_host": args.udp_host,
        "udp_port": args.udp_port,
        "serial_port": args.serial_port,
        "serial_baudrate": args.baudrate,
        "can_channel": args.can_channel,
        "web_host": args.host,
        "web_port": args.port,
    }
    options.update({k: v for k, v in overrides.items() if v is not None})
    return HTSConfig.from_dict(options)


def main():
    """Main entry point."""
    args = build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = config_from_args(args)
    autopilot = HTSAutopilot(config)

    if not autopilot.start():
        logger.error("Failed to start autopilot output")
        sys.exit(1)

    shutdown = threading.Event()

    def signal_handler(sig, frame):
        logger.info("Shutdown signal received")
        autopilot.stop()
        shutdown.set()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        if args.no_web:
            logger.info("Autopilot output running. Press Ctrl+C to stop.")
            shutdown.wait()
        else:
            app = create_app(autopilot)
            logger.info(f"Control page at http://{config.web_host}:{config.web_port}/")
            app.run(host=config.web_host, port=config.web_port, threaded=True)
    finally:
        autopilot.stop()


if __name__ == "__main__":
    main()
