"""
Order book advisor.

Clusters order book depth into support and resistance levels and suggests a
price near them. The suggestion is advisory only; it never blocks a trade.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

import pandas as pd

from .exchange_client import ExchangeClient
from .models import OrderBookAnalysis, OrderBookLevel, PriceAdvice
from ..config.models import OrderBookConfig
from ..exceptions import ExchangeError
from ..models import utc_now

logger = logging.getLogger(__name__)

TICK = 0.01
NEAR_LEVEL_PCT = 0.01


class OrderBookAdvisor:
    """Analyzes order book depth with a short-lived per-symbol cache."""

    def __init__(self, client: ExchangeClient, config: OrderBookConfig,
                 clock: Optional[Callable[[], datetime]] = None):
        self.client = client
        self.config = config
        self._clock = clock or utc_now
        self._cache: Dict[str, OrderBookAnalysis] = {}

    def analyze(self, symbol: str) -> OrderBookAnalysis:
        """
        Analyze the order book for a symbol.

        Args:
            symbol: Market symbol, e.g. 'BTC/USD'

        Returns:
            OrderBookAnalysis; on failure `error` is set and no levels are present.
        """
        now = self._clock()
        cached = self._cache.get(symbol)
        if cached is not None and (now - cached.analyzed_at).total_seconds() < self.config.cache_seconds:
            return cached

        try:
            book = self.client.fetch_order_book(symbol, self.config.depth_levels)
        except ExchangeError as e:
            logger.warning(f"Order book analysis failed for {symbol}: {e}")
            return OrderBookAnalysis(symbol=symbol, analyzed_at=now, error=str(e))

        bids = self._to_frame((book or {}).get("bids") or [])
        asks = self._to_frame((book or {}).get("asks") or [])
        if bids.empty or asks.empty:
            return OrderBookAnalysis(symbol=symbol, analyzed_at=now, error="Empty order book")

        best_bid = float(bids["price"].iloc[0])
        best_ask = float(asks["price"].iloc[0])
        mid_price = (best_bid + best_ask) / 2
        bid_volume = float(bids["value"].sum())
        ask_volume = float(asks["value"].sum())
        total_volume = bid_volume + ask_volume

        analysis = OrderBookAnalysis(
            symbol=symbol,
            analyzed_at=now,
            best_bid=best_bid,
            best_ask=best_ask,
            mid_price=mid_price,
            spread_bps=round((best_ask - best_bid) / mid_price * 10000, 2),
            imbalance=round((bid_volume - ask_volume) / total_volume, 4) if total_volume > 0 else 0.0,
            support_levels=self._identify_levels(bids, mid_price),
            resistance_levels=self._identify_levels(asks, mid_price),
        )
        self._cache[symbol] = analysis
        return analysis

    def get_optimal_price(self, symbol: str, side: str, target_price: float) -> PriceAdvice:
        """
        Suggest an order price near support (buys) or resistance (sells).

        Args:
            symbol: Market symbol
            side: 'buy' or 'sell'
            target_price: Price the caller intends to trade at

        Returns:
            PriceAdvice with `adjusted` False when no better level was found.
        """
        analysis = self.analyze(symbol)
        if analysis.error:
            return PriceAdvice(side=side, price=target_price, adjusted=False, reason=analysis.error)

        if side == "buy":
            nearest = next((s for s in analysis.support_levels if s.price <= target_price), None)
            if nearest is not None and nearest.price >= target_price * (1 - NEAR_LEVEL_PCT):
                return PriceAdvice(side=side, price=nearest.price, adjusted=True,
                                   reason=f"Adjusted to support level at {nearest.price}")

            optimal_bid = round(analysis.best_bid + TICK, 8)
            if optimal_bid < target_price:
                return PriceAdvice(side=side, price=optimal_bid, adjusted=True,
                                   reason=f"Adjusted to best bid + {TICK} at {optimal_bid}")
        else:
            nearest = next((r for r in analysis.resistance_levels if r.price >= target_price), None)
            if nearest is not None and nearest.price <= target_price * (1 + NEAR_LEVEL_PCT):
                return PriceAdvice(side=side, price=nearest.price, adjusted=True,
                                   reason=f"Adjusted to resistance level at {nearest.price}")

            optimal_ask = round(analysis.best_ask - TICK, 8)
            if optimal_ask > target_price:
                return PriceAdvice(side=side, price=optimal_ask, adjusted=True,
                                   reason=f"Adjusted to best ask - {TICK} at {optimal_ask}")

        return PriceAdvice(side=side, price=target_price, adjusted=False, reason="No adjustment needed")

    def _to_frame(self, orders: List[list]) -> pd.DataFrame:
        """Convert ccxt [price, amount, ...] rows to a DataFrame with notional value."""
        if not orders:
            return pd.DataFrame(columns=["price", "amount", "value"])
        frame = pd.DataFrame([row[:2] for row in orders], columns=["price", "amount"], dtype=float)
        frame["value"] = frame["price"] * frame["amount"]
        return frame

    def _identify_levels(self, orders: pd.DataFrame, mid_price: float) -> List[OrderBookLevel]:
        """Cluster orders into price buckets and keep the heaviest significant ones."""
        bucket = mid_price * self.config.cluster_distance
        clustered = orders.assign(level=(orders["price"] / bucket).round() * bucket)
        grouped = clustered.groupby("level").agg(
            volume=("value", "sum"),
            order_count=("price", "count"),
        )
        significant = grouped[grouped["volume"] >= self.config.min_significant_volume]
        top = significant.sort_values("volume", ascending=False).head(self.config.max_levels)

        return [
            OrderBookLevel(price=round(float(level), 2), volume=round(float(row["volume"]), 2),
                           order_count=int(row["order_count"]))
            for level, row in top.iterrows()
        ]
