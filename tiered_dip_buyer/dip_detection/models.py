"""
Data models for dip detection.
"""

from enum import Enum


class FlashCrashTransition(Enum):
    """State change produced by one controller update."""

    ACTIVATED = "activated"
    ENDED = "ended"
    EXPIRED = "expired"
