"""
Data models for order book analysis.
"""

from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class OrderBookLevel(BaseModel):
    """A clustered support or resistance level."""

    model_config = ConfigDict(frozen=True)

    price: float
    volume: float = Field(ge=0.0)
    order_count: int = Field(ge=1)


class OrderBookAnalysis(BaseModel):
    """Snapshot analysis of one symbol's order book."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    analyzed_at: datetime
    best_bid: Optional[float] = None
    best_ask: Optional[float] = None
    mid_price: Optional[float] = None
    spread_bps: Optional[float] = None
    imbalance: float = 0.0  # -1..1, positive means more bid volume
    support_levels: List[OrderBookLevel] = Field(default_factory=list)
    resistance_levels: List[OrderBookLevel] = Field(default_factory=list)
    error: Optional[str] = None


class PriceAdvice(BaseModel):
    """Advisory price for an order."""

    model_config = ConfigDict(frozen=True)

    side: Literal["buy", "sell"]
    price: float
    adjusted: bool
    reason: str
