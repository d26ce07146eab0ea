"""
Strategy engine module for the dip-accumulation engine.

This module wires the detectors, sizer, governor, ledger and exit evaluator
into the sequential per-symbol polling cycle.
"""

from .engine import DipBuyerEngine, build_engine, build_exchange_client, format_stats

__all__ = ["DipBuyerEngine", "build_engine", "build_exchange_client", "format_stats"]
