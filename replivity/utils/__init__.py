"""Utility modules for the Replivity cache layer."""

from .config import Settings, get_settings
from .formatting import format_bytes, format_duration

__all__ = [
    "Settings",
    "get_settings",
    "format_bytes",
    "format_duration",
]
