"""
NMEA2000 Interface Module
=========================

Interfaces with the NMEA2000 bus via a SocketCAN adapter (e.g. CandleLite
USB-CAN appearing as can0) and feeds navigation PGNs into the telemetry
store.

Values are written the way Signal K carries them: angles in radians,
speeds in m/s, position as {latitude, longitude} in decimal degrees.
Navigation fusion takes care of unit detection downstream.
"""

import threading
import time
from dataclasses import dataclass
from typing import Optional, Dict
from enum import IntEnum
import struct
import logging

import can

from .telemetry import TelemetryStore
from .navigation_fusion import NavigationPaths

logger = logging.getLogger(__name__)

# Not-available sentinels
NA_UINT16 = 0xFFFF
NA_INT16 = 0x7FFF
NA_INT32 = 0x7FFFFFFF

# Direction reference field values (PGN 127250 / 129026)
REF_TRUE = 0
REF_MAGNETIC = 1


class PGN(IntEnum):
    """Navigation NMEA2000 Parameter Group Numbers."""
    VESSEL_HEADING = 127250
    MAGNETIC_VARIATION = 127258
    POSITION_RAPID = 129025
    COG_SOG = 129026


@dataclass
class N2KConfig:
    """Configuration for NMEA2000 interface."""
    channel: str = "can0"
    bitrate: int = 250000


class NMEA2000Interface:
    """
    NMEA2000 bus reader.

    Decodes heading, variation, position and COG PGNs on a background
    thread and writes them to the telemetry store under the configured
    navigation paths.
    """

    def __init__(self, store: TelemetryStore,
                 config: Optional[N2KConfig] = None,
                 paths: Optional[NavigationPaths] = None):
        self.store = store
        self.config = config or N2KConfig()
        self.paths = paths or NavigationPaths()
        self._bus: Optional[can.BusABC] = None
        self._running = False
        self._thread: Optional[threading.Thread] = None

        # Statistics
        self._msg_count = 0
        self._pgn_counts: Dict[int, int] = {}

    def start(self) -> bool:
        """Start the CAN bus reader."""
        try:
            self._bus = can.interface.Bus(
                channel=self.config.channel,
                interface='socketcan',
                bitrate=self.config.bitrate
            )
        except (can.CanError, OSError) as e:
            logger.error(f"Failed to open CAN bus: {e}")
            return False

        self._running = True
        self._thread = threading.Thread(target=self._read_loop, daemon=True,
                                        name="n2k-reader")
        self._thread.start()
        logger.info(f"NMEA2000 started on {self.config.channel}")
        return True

    def stop(self):
        """Stop the CAN bus reader."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=1.0)
            self._thread = None
        if self._bus:
            self._bus.shutdown()
            self._bus = None
        logger.info("NMEA2000 stopped")

    def _read_loop(self):
        """Background thread reading CAN frames."""
        while self._running and self._bus:
            try:
                msg = self._bus.recv(timeout=0.1)
                if msg:
                    self._process_frame(msg)
            except can.CanError as e:
                logger.warning(f"CAN read error: {e}")
                time.sleep(0.01)

    def _process_frame(self, msg: can.Message):
        """Process a received CAN frame."""
        pgn = pgn_from_can_id(msg.arbitration_id)
        source = msg.arbitration_id & 0xFF

        self._msg_count += 1
        self._pgn_counts[pgn] = self._pgn_counts.get(pgn, 0) + 1

        self._decode_pgn(pgn, bytes(msg.data), source)

    def _decode_pgn(self, pgn: int, data: bytes, source: int):
        """Decode known PGNs into the telemetry store."""
        now_ms = time.time() * 1000.0

        if pgn == PGN.VESSEL_HEADING:
            # Byte 0: SID
            # Bytes 1-2: Heading (uint16, 0.0001 rad)
            # Bytes 3-4: Deviation (int16, 0.0001 rad)
            # Bytes 5-6: Variation (int16, 0.0001 rad)
            # Byte 7: Reference (bits 0-1)
            if len(data) >= 8:
                heading_raw = struct.unpack('<H', data[1:3])[0]
                variation_raw = struct.unpack('<h', data[5:7])[0]
                reference = data[7] & 0x03

                if heading_raw != NA_UINT16:
                    heading_rad = heading_raw * 0.0001
                    if reference == REF_TRUE:
                        self.store.update(self.paths.heading_true, heading_rad, now_ms)
                    elif reference == REF_MAGNETIC:
                        self.store.update(self.paths.heading_mag, heading_rad, now_ms)
                if variation_raw != NA_INT16:
                    self.store.update(self.paths.variation, variation_raw * 0.0001, now_ms)

        elif pgn == PGN.MAGNETIC_VARIATION:
            # Byte 0: SID
            # Byte 1: Source (bits 0-3)
            # Bytes 2-3: Age of service (days)
            # Bytes 4-5: Variation (int16, 0.0001 rad)
            if len(data) >= 6:
                variation_raw = struct.unpack('<h', data[4:6])[0]
                if variation_raw != NA_INT16:
                    self.store.update(self.paths.variation, variation_raw * 0.0001, now_ms)

        elif pgn == PGN.POSITION_RAPID:
            # Bytes 0-3: Latitude (int32, 1e-7 deg)
            # Bytes 4-7: Longitude (int32, 1e-7 deg)
            if len(data) >= 8:
                lat_raw, lon_raw = struct.unpack('<ii', data[0:8])
                if lat_raw != NA_INT32 and lon_raw != NA_INT32:
                    self.store.update(self.paths.position, {
                        "latitude": lat_raw * 1e-7,
                        "longitude": lon_raw * 1e-7
                    }, now_ms)

        elif pgn == PGN.COG_SOG:
            # Byte 0: SID
            # Byte 1: COG reference (bits 0-1)
            # Bytes 2-3: COG (uint16, 0.0001 rad)
            if len(data) >= 4:
                reference = data[1] & 0x03
                cog_raw = struct.unpack('<H', data[2:4])[0]

                if cog_raw != NA_UINT16:
                    cog_rad = cog_raw * 0.0001
                    if reference == REF_TRUE:
                        self.store.update(self.paths.cog_true, cog_rad, now_ms)
                    elif reference == REF_MAGNETIC:
                        self.store.update(self.paths.cog_mag, cog_rad, now_ms)

    @property
    def stats(self) -> dict:
        """Get statistics about NMEA2000 communication."""
        return {
            "message_count": self._msg_count,
            "pgn_counts": dict(self._pgn_counts),
            "connected": self._bus is not None
        }


def pgn_from_can_id(can_id: int) -> int:
    """
    Extract the PGN from a 29-bit NMEA2000 CAN identifier.

    CAN ID: Priority(3) | Reserved(1) | Data Page(1) | PDU Format(8) | PDU Specific(8) | Source(8)
    """
    pdu_format = (can_id >> 16) & 0xFF
    pdu_specific = (can_id >> 8) & 0xFF

    if pdu_format < 240:
        # PDU1 format (destination specific)
        pgn = pdu_format << 8
    else:
        # PDU2 format (broadcast)
        pgn = (pdu_format << 8) | pdu_specific

    if (can_id >> 24) & 0x01:
        pgn |= 0x10000

    return pgn
