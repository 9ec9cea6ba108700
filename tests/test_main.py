"""
Tests for application wiring and command-line handling.
"""

import threading
import time
import pytest
from unittest.mock import patch

from hts_autopilot.config import HTSConfig
from hts_autopilot.control.mode_manager import AutopilotMode
from hts_autopilot.main import HTSAutopilot, build_parser, config_from_args
from hts_autopilot.nmea0183.sinks import CallbackSink, QueuedSink

from conftest import RecordingSink


class TestHTSAutopilot:
    """Tests for the application controller."""

    def test_initial_mode_from_config(self, store):
        """Config enabled/default mode seed the state."""
        config = HTSConfig(enabled=True, default_mode=AutopilotMode.TRACK_HOLD)
        autopilot = HTSAutopilot(config, store=store, sink=RecordingSink())

        state = autopilot.mode_manager.snapshot()
        assert state.enabled is True
        assert state.mode == AutopilotMode.TRACK_HOLD

    def test_emits_while_running(self, nav_store):
        """Started autopilot emits sentences; none after stop. Caller's sink stays open."""
        sink = RecordingSink()
        autopilot = HTSAutopilot(HTSConfig(rate_hz=10.0), store=nav_store, sink=sink)
        autopilot.handle_command("enable")
        autopilot.handle_command("set_heading", 123)

        assert autopilot.start() is True
        time.sleep(0.25)
        autopilot.stop()
        count = len(sink.sentences)
        time.sleep(0.2)

        assert count >= 1
        assert len(sink.sentences) == count
        assert sink.sentences[0].startswith("$IIBOD,125.0,T,123.0,M,")
        assert sink.closed is False
        assert autopilot.state_dict()["lastSentence"] == sink.sentences[-1].strip()

    def test_restart_keeps_one_timer(self, nav_store):
        """start() on a running autopilot replaces the output thread."""
        def output_threads():
            return sum(1 for t in threading.enumerate() if t.name == "hts-output")

        before = output_threads()
        autopilot = HTSAutopilot(HTSConfig(rate_hz=10.0), store=nav_store, sink=RecordingSink())

        autopilot.start()
        autopilot.start()
        time.sleep(0.15)
        running = output_threads()
        autopilot.stop()

        assert running == before + 1
        assert output_threads() == before

    @patch("hts_autopilot.nmea0183.sinks.socket.socket")
    def test_restart_rebuilds_owned_sink(self, socket_cls, nav_store):
        """A sink built by the autopilot is closed on stop and rebuilt on start."""
        sock = socket_cls.return_value
        autopilot = HTSAutopilot(HTSConfig(rate_hz=10.0), store=nav_store)
        autopilot.handle_command("enable")
        autopilot.handle_command("set_heading", 90)

        autopilot.start()
        first_sink = autopilot._sink
        time.sleep(0.15)
        autopilot.stop()
        sent_first_run = sock.sendto.call_count

        autopilot.start()
        second_sink = autopilot._sink
        time.sleep(0.15)
        autopilot.stop()

        assert sent_first_run >= 1
        assert second_sink is not first_sink
        assert sock.sendto.call_count > sent_first_run
        assert second_sink.dropped_count == 0
        assert autopilot._sink is None

    def test_log_output(self, store):
        """output=log uses a callback sink."""
        autopilot = HTSAutopilot(HTSConfig(output="log"), store=store)

        assert isinstance(autopilot._create_sink(), CallbackSink)

    @patch("hts_autopilot.nmea0183.sinks.socket.socket")
    def test_udp_output(self, socket_cls, store):
        """output=udp wraps a UDP sink in a queue."""
        autopilot = HTSAutopilot(HTSConfig(), store=store)

        sink = autopilot._create_sink()

        assert isinstance(sink, QueuedSink)
        sink.close()

    def test_serial_failure_aborts_start(self, store):
        """Unopenable serial port fails start."""
        autopilot = HTSAutopilot(HTSConfig(output="serial", serial_port="/nonexistent/tty"),
                                 store=store)

        assert autopilot.start() is False

    def test_status(self, store):
        """Runtime statistics before start."""
        autopilot = HTSAutopilot(HTSConfig(), store=store, sink=RecordingSink())

        status = autopilot.status
        assert status["running"] is False
        assert status["mode"] == "BOD"
        assert status["n2k"] is None


class TestCommandLine:
    """Tests for argument parsing."""

    def test_defaults(self):
        """No arguments → default config."""
        args = build_parser().parse_args([])

        assert config_from_args(args) == HTSConfig()

    def test_overrides(self, tmp_path):
        """Flags override the config file."""
        path = tmp_path / "hts.json"
        path.write_text('{"rateHz": 2, "talker": "GP", "output": "serial"}')
        args = build_parser().parse_args([
            "-c", str(path), "--enable", "--mode", "APB", "--talker", "EC",
            "--udp-port", "2000", "--port", "9000"
        ])

        config = config_from_args(args)

        assert config.enabled is True
        assert config.default_mode == AutopilotMode.TRACK_HOLD
        assert config.rate_hz == 2.0
        assert config.talker == "EC"
        assert config.output == "serial"
        assert config.udp_port == 2000
        assert config.web_port == 9000

    def test_invalid_mode_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--mode", "XTE"])
