"""
Position ledger module.

Owns the authoritative, persisted record of dip positions and the aggregate
capital deployed across them.
"""

from .position_ledger import PositionLedger

__all__ = ["PositionLedger"]
