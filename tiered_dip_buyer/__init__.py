"""
Tiered Dip Buyer - An autonomous dip-accumulation engine for crypto spot markets.

This package watches a configurable set of symbols, detects price declines in
four severity tiers, accelerates buying during flash crashes, sizes orders by
tier, symbol weight and support proximity, and liquidates positions through
trailing-stop, take-profit, stop-loss and time-based exits.
"""

__version__ = "0.1.0"
__author__ = "Tiered Dip Buyer Team"

# Lazy imports to avoid pulling in ccxt/pandas for light-weight consumers
__all__ = [
    "ConfigurationManager",
    "DipBuyerConfig",
    "DipBuyerEngine",
    "PositionLedger",
    "Position",
    "DipSignal",
]


def __getattr__(name):
    """Lazy import for package components."""
    if name == "ConfigurationManager":
        from .config import ConfigurationManager
        return ConfigurationManager
    elif name == "DipBuyerConfig":
        from .config import DipBuyerConfig
        return DipBuyerConfig
    elif name == "DipBuyerEngine":
        from .strategy_engine import DipBuyerEngine
        return DipBuyerEngine
    elif name == "PositionLedger":
        from .ledger import PositionLedger
        return PositionLedger
    elif name == "Position":
        from .models import Position
        return Position
    elif name == "DipSignal":
        from .models import DipSignal
        return DipSignal
    else:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
