"""
HTS Autopilot Output
====================

Best-available heading/COG fusion driving NMEA0183 heading-to-steer
output: BOD for heading hold, APB for rhumb-line track hold.
"""

__version__ = "0.1.0"
