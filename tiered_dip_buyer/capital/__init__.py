"""
Capital module: order sizing and the capital governor.
"""

from .position_sizer import PositionSizer
from .capital_governor import CapitalGovernor
from .models import BuyAuthorization, CapitalSnapshot, OrderSizing, RefusalReason

__all__ = [
    "PositionSizer",
    "CapitalGovernor",
    "BuyAuthorization",
    "CapitalSnapshot",
    "OrderSizing",
    "RefusalReason",
]
