"""
NMEA0183 Sentence Encoder
=========================

Builds the two autopilot guidance sentences this system emits.

    $<TT>BOD,<ttt.t>,T,<mmm.m>,M,<dest>,<orig>*CS
        Bearing origin to destination. Used as heading-to-steer for
        heading hold.

    $<TT>APB,A,A,<x.xx>,<L|R>,N,A,A,<ttt.t>,T,<mmm.m>,M,<dest>,,,*CS
        Autopilot sentence B. Cross-track error plus heading-to-steer
        for rhumb-line track hold. Arrival and perpendicular flags are
        always A,A: there is no waypoint arrival logic.

An unknown angle renders as an empty field. Consumers must treat empty
as "not available", never as zero.
"""

import re
from typing import Optional

from ..sensors.navigation_fusion import wrap360

DEFAULT_TALKER = "II"

# Widest value the fixed-width APB XTE field can carry
MAX_XTE_NM = 9.99

# Characters that would break sentence framing in free-text fields
_FRAMING_CHARS = re.compile(r"[$*,!\r\n]")


def nmea_checksum(body: str) -> str:
    """XOR of all characters between '$' and '*', as 2 uppercase hex digits."""
    checksum = 0
    for char in body:
        checksum ^= ord(char)
    return f"{checksum:02X}"


def wrap_sentence(body: str) -> str:
    """Frame a body as $body*CS followed by CRLF."""
    return f"${body}*{nmea_checksum(body)}\r\n"


def sanitize_talker(talker: Optional[str]) -> str:
    """
    Normalize a talker ID.

    Uppercased, non-alphanumerics stripped, first two characters kept.
    Falls back to 'II' if fewer than two remain.
    """
    up = re.sub(r"[^A-Z0-9]", "", str(talker or DEFAULT_TALKER).upper())
    return up[:2] if len(up) >= 2 else DEFAULT_TALKER


def sanitize_field(text: Optional[str]) -> str:
    """Make a free-text field safe: ASCII only, no framing characters."""
    if not text:
        return ""
    ascii_text = str(text).encode("ascii", "ignore").decode("ascii")
    return _FRAMING_CHARS.sub("", ascii_text)


def format_angle(deg: Optional[float]) -> str:
    """Angle as ddd.d, zero-padded to width 5 ("083.4"). Empty if None."""
    if deg is None:
        return ""
    return f"{wrap360(deg):05.1f}"


def format_distance_nm(nm: float) -> str:
    """Distance clamped to [0, 9.99] with two decimals ("0.01")."""
    n = max(0.0, min(MAX_XTE_NM, nm))
    return f"{n:.2f}"


def build_bod(talker: str,
              true_deg: Optional[float],
              mag_deg: Optional[float],
              dest: str = "DEST",
              orig: str = "ORIG") -> str:
    """
    Build a BOD sentence.

    Args:
        talker: Talker ID (sanitized here)
        true_deg: Bearing true, or None for an empty field
        mag_deg: Bearing magnetic, or None for an empty field
        dest: Destination waypoint ID
        orig: Origin waypoint ID

    Returns:
        Complete sentence including checksum and CRLF
    """
    body = (
        f"{sanitize_talker(talker)}BOD,"
        f"{format_angle(true_deg)},T,"
        f"{format_angle(mag_deg)},M,"
        f"{sanitize_field(dest)},{sanitize_field(orig)}"
    )
    return wrap_sentence(body)


def build_apb(talker: str,
              xte_nm: float,
              xte_side: str,
              hts_mag_deg: Optional[float],
              hts_true_deg: Optional[float],
              dest_id: str) -> str:
    """
    Build an APB sentence.

    Args:
        talker: Talker ID (sanitized here)
        xte_nm: Cross-track error magnitude (clamped to 9.99)
        xte_side: 'L' or 'R'; anything but 'L' renders as 'R'
        hts_mag_deg: Heading to steer, magnetic
        hts_true_deg: Heading to steer, true, or None for an empty field
        dest_id: Destination waypoint ID

    Returns:
        Complete sentence including checksum and CRLF
    """
    side = "L" if xte_side == "L" else "R"
    body = (
        f"{sanitize_talker(talker)}APB,A,A,"
        f"{format_distance_nm(xte_nm)},{side},N,"
        f"A,A,"
        f"{format_angle(hts_true_deg)},T,"
        f"{format_angle(hts_mag_deg)},M,"
        f"{sanitize_field(dest_id)},,,"
    )
    return wrap_sentence(body)
