"""
Rolling, time-bounded price history per symbol.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

import pandas as pd

from ..models import PriceSample, percent_change
from ..exceptions import ExchangeError
from ..symbol_state import SymbolStateBook

logger = logging.getLogger(__name__)


class PriceHistoryTracker:
    """Maintains the retained price samples on each SymbolState."""

    def __init__(self, states: SymbolStateBook, retention_hours: float = 12.0):
        """
        Args:
            states: Per-symbol state records owning the sample lists
            retention_hours: Samples older than this are pruned on every record
        """
        self.states = states
        self.retention = timedelta(hours=retention_hours)

    def record(self, symbol: str, price: float, time: datetime) -> Optional[PriceSample]:
        """
        Append a sample and prune samples outside the retention window.

        Also raises the trailing-stop high-water mark while a position is open.
        A sample older than the latest recorded one (the clock stepped back) is
        dropped with a warning; the high-water mark still sees its price.

        Returns:
            The recorded sample, or None if it was dropped.
        """
        state = self.states[symbol]
        sample = PriceSample(time=time, price=price)

        if state.highest_price_since_buy > 0 and price > state.highest_price_since_buy:
            state.highest_price_since_buy = price

        if state.history and time < state.history[-1].time:
            logger.warning(
                f"Dropping out-of-order sample for {symbol}: {time} precedes {state.history[-1].time}"
            )
            return None

        cutoff = time - self.retention
        state.history = [s for s in state.history if s.time > cutoff]
        state.history.append(sample)
        return sample

    def refresh(self, symbol: str, client, now: datetime) -> Optional[float]:
        """
        Fetch the current price from the exchange and record it.

        Returns:
            The price, or None when the exchange call failed. History is left
            untouched on failure.
        """
        try:
            price = client.fetch_price(symbol)
        except ExchangeError as e:
            logger.warning(f"Error fetching {symbol} price: {e}")
            return None

        self.record(symbol, price, now)
        return price

    def latest(self, symbol: str) -> Optional[float]:
        """Most recent price, or None if nothing has been recorded."""
        history = self.states[symbol].history
        if not history:
            return None
        return history[-1].price

    def as_series(self, symbol: str) -> pd.Series:
        """Retained samples as a price Series indexed by sample time."""
        history = self.states[symbol].history
        return pd.Series(
            [s.price for s in history],
            index=pd.DatetimeIndex([s.time for s in history], name="time"),
            name="price",
            dtype=float,
        )

    def full_history_change_pct(self, symbol: str) -> Optional[float]:
        """Percentage change from the oldest to the newest retained sample."""
        history = self.states[symbol].history
        if len(history) < 2:
            return None
        oldest, newest = history[0].price, history[-1].price
        return percent_change(oldest, newest)
