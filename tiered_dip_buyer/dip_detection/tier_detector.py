"""
Multi-tier dip detection over the retained price history.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from ..config.models import TierConfig
from ..models import DipSignal, percent_change
from ..price_history import PriceHistoryTracker

logger = logging.getLogger(__name__)


class DipTierDetector:
    """Finds the most severe configured tier satisfied by the price history."""

    def __init__(self, tiers: List[TierConfig], tracker: PriceHistoryTracker):
        """
        Args:
            tiers: The four tier configurations, in any order
            tracker: Source of the retained price samples
        """
        self.tiers = sorted(tiers, key=lambda t: t.tier, reverse=True)
        self.tracker = tracker

    def detect(self, symbol: str, now: datetime) -> Optional[DipSignal]:
        """
        Detect which dip tier, if any, has fired for a symbol.

        Tiers are tested from most to least severe and the first match wins, so a
        9% drop against tiers at -3/-5/-8/-12 resolves to the -8% tier.

        For each tier the reference price is the newest sample at or before
        `now - lookback`. A tier fires when the change from that reference to the
        latest price is at or below its threshold.

        Args:
            symbol: Symbol to evaluate
            now: Evaluation time

        Returns:
            DipSignal for the winning tier, or None when no tier fires or the
            history is too short.
        """
        prices = self.tracker.as_series(symbol)
        if len(prices) < 2:
            return None

        current_price = float(prices.iloc[-1])

        for tier in self.tiers:
            horizon = now - timedelta(minutes=tier.lookback_minutes)
            older = prices[prices.index <= horizon]
            if older.empty:
                continue

            old_price = float(older.iloc[-1])
            change_pct = percent_change(old_price, current_price)

            if change_pct <= tier.threshold_pct:
                logger.debug(f"{symbol}: tier {tier.tier} fired ({change_pct:.2f}% <= {tier.threshold_pct}%)")
                return DipSignal(
                    tier=tier.tier,
                    threshold_pct=tier.threshold_pct,
                    order_size_usd=tier.order_size_usd,
                    lookback_minutes=tier.lookback_minutes,
                    change_pct=change_pct,
                    old_price=old_price,
                    current_price=current_price,
                )

        return None
