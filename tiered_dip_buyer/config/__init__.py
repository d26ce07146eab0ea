"""
Configuration management module for the dip-accumulation engine.

This module handles loading, validating, and managing YAML configuration files
using Pydantic for robust validation and type safety.
"""

from .config_manager import ConfigurationManager
from .models import (
    DipBuyerConfig,
    TierConfig,
    FlashCrashConfig,
    TrailingStopConfig,
    DynamicReserveConfig,
    SupportLevel,
    ExchangeConfig,
    OrderBookConfig,
    StoreConfig,
)

__all__ = [
    "ConfigurationManager",
    "DipBuyerConfig",
    "TierConfig",
    "FlashCrashConfig",
    "TrailingStopConfig",
    "DynamicReserveConfig",
    "SupportLevel",
    "ExchangeConfig",
    "OrderBookConfig",
    "StoreConfig",
]
