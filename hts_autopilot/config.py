"""
Configuration Module
====================

Startup parameters for the autopilot output.

Options can come from a JSON file using the option names of the original
plugin schema (``enabled``, ``defaultMode``, ``rateHz``, ``talker``,
``gpsStaleSeconds``, ``path_position`` ...) or the snake_case field names
below. A malformed or missing value never fails startup: it falls back
to its default, and out-of-range numbers are clamped.
"""

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union
import logging

from .control.mode_manager import AutopilotMode
from .nmea0183.sentences import sanitize_talker
from .nmea0183.sinks import DEFAULT_UDP_PORT
from .sensors.navigation_fusion import NavigationPaths

logger = logging.getLogger(__name__)

RATE_HZ_RANGE = (0.2, 10.0)
GPS_STALE_RANGE = (1.0, 60.0)

OUTPUT_KINDS = ("udp", "serial", "log")

# Option key → NavigationPaths field
PATH_OPTIONS = {
    "path_position": "position",
    "path_cogMag": "cog_mag",
    "path_cogTrue": "cog_true",
    "path_hdgMag": "heading_mag",
    "path_hdgTrue": "heading_true",
    "path_variation": "variation",
}


def get_bool(options: Mapping[str, Any], key: str, default: bool) -> bool:
    """Get a boolean option; accepts bools and common strings."""
    value = options.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in ("true", "1", "yes", "on"):
        return True
    if text in ("false", "0", "no", "off", ""):
        return False
    logger.warning(f"Invalid boolean for {key}: {value!r}, using {default}")
    return default


def get_float(options: Mapping[str, Any], key: str, default: float,
              bounds: Optional[tuple] = None) -> float:
    """Get a float option, clamped to bounds; default if malformed."""
    value = options.get(key)
    if value is None:
        return default
    try:
        num = float(value)
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Invalid number for {key}: {value!r}, using {default}")
        return default
    if not math.isfinite(num) or isinstance(value, bool):
        logger.warning(f"Invalid number for {key}: {value!r}, using {default}")
        return default
    if bounds is not None:
        low, high = bounds
        clamped = max(low, min(high, num))
        if clamped != num:
            logger.warning(f"{key}={num} out of range, clamped to {clamped}")
        num = clamped
    return num


def get_int(options: Mapping[str, Any], key: str, default: int) -> int:
    """Get an integer option; default if malformed."""
    value = options.get(key)
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Invalid integer for {key}: {value!r}, using {default}")
        return default


def get_str(options: Mapping[str, Any], key: str, default: str) -> str:
    """Get a non-empty string option."""
    value = options.get(key)
    if value is None or not str(value).strip():
        return default
    return str(value).strip()


def _pick(options: Mapping[str, Any], *keys: str) -> Any:
    """First present value among alternative option names."""
    for key in keys:
        if options.get(key) is not None:
            return options[key]
    return None


@dataclass
class HTSConfig:
    """Autopilot output configuration."""
    # Output behaviour
    enabled: bool = False
    default_mode: AutopilotMode = AutopilotMode.HEADING_HOLD
    rate_hz: float = 1.0
    talker: str = "II"
    gps_stale_seconds: float = 5.0
    paths: NavigationPaths = field(default_factory=NavigationPaths)

    # Sentence transport
    output: str = "udp"
    udp_host: str = "255.255.255.255"
    udp_port: int = DEFAULT_UDP_PORT
    serial_port: str = "/dev/ttyUSB0"
    serial_baudrate: int = 4800

    # Telemetry source (None = no bus reader)
    can_channel: Optional[str] = None

    # Control page
    web_host: str = "0.0.0.0"
    web_port: int = 8080

    @classmethod
    def from_dict(cls, options: Optional[Mapping[str, Any]]) -> "HTSConfig":
        """
        Build a config from an options mapping.

        Unknown keys are ignored; bad values fall back to defaults.
        """
        if not isinstance(options, Mapping):
            if options is not None:
                logger.warning(f"Ignoring non-mapping options: {type(options).__name__}")
            options = {}

        defaults = cls()
        flat = {
            "enabled": _pick(options, "enabled"),
            "mode": _pick(options, "defaultMode", "default_mode"),
            "rate": _pick(options, "rateHz", "rate_hz"),
            "talker": _pick(options, "talker"),
            "stale": _pick(options, "gpsStaleSeconds", "gps_stale_seconds"),
        }

        config = cls(
            enabled=get_bool(flat, "enabled", defaults.enabled),
            default_mode=AutopilotMode.parse(flat["mode"], defaults.default_mode),
            rate_hz=get_float(flat, "rate", defaults.rate_hz, RATE_HZ_RANGE),
            talker=sanitize_talker(get_str(flat, "talker", defaults.talker)),
            gps_stale_seconds=get_float(flat, "stale", defaults.gps_stale_seconds,
                                        GPS_STALE_RANGE),
            output=get_str(options, "output", defaults.output).lower(),
            udp_host=get_str(options, "udp_host", defaults.udp_host),
            udp_port=get_int(options, "udp_port", defaults.udp_port),
            serial_port=get_str(options, "serial_port", defaults.serial_port),
            serial_baudrate=get_int(options, "serial_baudrate", defaults.serial_baudrate),
            can_channel=options.get("can_channel") or None,
            web_host=get_str(options, "web_host", defaults.web_host),
            web_port=get_int(options, "web_port", defaults.web_port),
        )

        if config.output not in OUTPUT_KINDS:
            logger.warning(f"Unknown output {config.output!r}, using {defaults.output}")
            config.output = defaults.output

        nested = options.get("paths")
        nested = nested if isinstance(nested, Mapping) else {}
        for option_key, attr in PATH_OPTIONS.items():
            value = _pick(options, option_key) or nested.get(attr)
            if isinstance(value, str) and value.strip():
                setattr(config.paths, attr, value.strip())

        return config

    def to_dict(self) -> dict:
        """Render in the original option naming."""
        data = {
            "enabled": self.enabled,
            "defaultMode": self.default_mode.value,
            "rateHz": self.rate_hz,
            "talker": self.talker,
            "gpsStaleSeconds": self.gps_stale_seconds,
            "output": self.output,
            "udp_host": self.udp_host,
            "udp_port": self.udp_port,
            "serial_port": self.serial_port,
            "serial_baudrate": self.serial_baudrate,
            "can_channel": self.can_channel,
            "web_host": self.web_host,
            "web_port": self.web_port,
        }
        for option_key, attr in PATH_OPTIONS.items():
            data[option_key] = getattr(self.paths, attr)
        return data


def load_config(path: Optional[Union[str, Path]]) -> HTSConfig:
    """
    Load configuration from a JSON file.

    A missing or unreadable file yields the defaults.
    """
    if path is None:
        return HTSConfig()

    path = Path(path)
    if not path.exists():
        logger.warning(f"Config file {path} not found, using defaults")
        return HTSConfig()

    try:
        with open(path, encoding="utf-8") as f:
            options = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to read config {path}: {e}, using defaults")
        return HTSConfig()

    logger.info(f"Loaded config from {path}")
    return HTSConfig.from_dict(options)
