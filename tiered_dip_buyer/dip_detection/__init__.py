"""
Dip detection module.

This module evaluates the configured severity tiers against the price history
and runs the per-symbol flash-crash state machine.
"""

from .tier_detector import DipTierDetector
from .flash_crash import FlashCrashController
from .models import FlashCrashTransition

__all__ = ["DipTierDetector", "FlashCrashController", "FlashCrashTransition"]
