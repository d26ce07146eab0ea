"""
Data persistence module for the dip-accumulation engine.

This module stores one row per position attempt, either in SQLite or in a JSON
file with atomic writes and corruption recovery.
"""

from .position_store import (
    PositionStore,
    SqlitePositionStore,
    JsonPositionStore,
    create_position_store,
)

__all__ = ["PositionStore", "SqlitePositionStore", "JsonPositionStore", "create_position_store"]
