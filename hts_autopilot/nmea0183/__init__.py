"""
NMEA0183 Output
===============

Sentence encoding (BOD, APB) and the sinks that carry sentences out.
"""

from .sentences import (
    build_bod,
    build_apb,
    nmea_checksum,
    sanitize_talker,
    format_angle,
    format_distance_nm,
)

from .sinks import (
    SentenceSink,
    CallbackSink,
    UdpSink,
    SerialSink,
    QueuedSink,
)

__all__ = [
    'build_bod',
    'build_apb',
    'nmea_checksum',
    'sanitize_talker',
    'format_angle',
    'format_distance_nm',
    'SentenceSink',
    'CallbackSink',
    'UdpSink',
    'SerialSink',
    'QueuedSink',
]
