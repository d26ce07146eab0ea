"""
Price history module.

This module keeps a rolling, time-bounded sequence of price samples for each
monitored symbol and exposes it as pandas Series for dip detection.
"""

from .tracker import PriceHistoryTracker
from ..models import PriceSample

__all__ = ["PriceHistoryTracker", "PriceSample"]
