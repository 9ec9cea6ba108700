"""Control page for the autopilot output."""

from .server import create_app

__all__ = ['create_app']
