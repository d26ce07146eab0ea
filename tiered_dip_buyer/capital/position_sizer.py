"""
Order sizing from tier, symbol weight and support-level proximity.
"""

import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

from .models import OrderSizing
from ..config.models import DipBuyerConfig, SupportLevel
from ..models import DipSignal

logger = logging.getLogger(__name__)


class PositionSizer:
    """Computes the USD size of a dip buy."""

    def __init__(self, config: DipBuyerConfig):
        self.config = config

    def weight_multiplier(self, symbol: str) -> float:
        """Symbol weight normalized so a balanced book sizes at 1.0x."""
        return self.config.symbol_weights[symbol] * len(self.config.symbols)

    def find_support_level(self, symbol: str, price: float) -> Tuple[float, Optional[SupportLevel]]:
        """
        Look up the support bonus for the current price.

        Levels are checked in configured order and the first whose tolerance band
        contains the price wins.

        Returns:
            (bonus multiplier, matched level) or (1.0, None)
        """
        tolerance = self.config.support_tolerance_pct / 100
        for level in self.config.support_levels.get(symbol, []):
            lower = level.price * (1 - tolerance)
            upper = level.price * (1 + tolerance)
            if lower <= price <= upper:
                return level.bonus, level
        return 1.0, None

    def calculate_order_size(self, symbol: str, signal: DipSignal, current_price: float) -> OrderSizing:
        """
        Calculate the order size for a fired tier.

        size = tier order size * (weight * number of symbols) * support bonus,
        rounded half-up to a whole currency unit.
        """
        multiplier = self.weight_multiplier(symbol)
        bonus, level = self.find_support_level(symbol, current_price)
        raw = signal.order_size_usd * multiplier * bonus
        size = int(Decimal(str(raw)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

        if level is not None:
            logger.info(f"{symbol} near support level ${level.price:,.2f} - {bonus}x bonus")

        return OrderSizing(
            size_usd=size,
            base_size_usd=signal.order_size_usd,
            weight_multiplier=multiplier,
            support_bonus=bonus,
            support_level=level.price if level else None,
        )
