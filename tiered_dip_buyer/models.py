"""
Shared data models for the dip-accumulation engine.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ConfigDict


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def percent_change(old: float, new: float) -> float:
    """Percentage change from `old` to `new`."""
    return (new - old) / old * 100


class PositionStatus(Enum):
    """Lifecycle of a position row."""

    OPEN = "open"
    CLOSED = "closed"


class ExitReason(Enum):
    """Why a position was liquidated."""

    TRAILING_STOP = "trailing_stop"
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"
    TIME_BASED = "time_based"


class PriceSample(BaseModel):
    """A single observed price."""

    model_config = ConfigDict(frozen=True)

    time: datetime
    price: float = Field(gt=0.0)


class Position(BaseModel):
    """A dip position. One row per position attempt in the persistent store."""

    model_config = ConfigDict(validate_assignment=True)

    id: Optional[int] = None
    symbol: str
    entry_price: float = Field(gt=0.0)
    amount: float = Field(gt=0.0)
    entry_time: datetime
    entry_tier: int = Field(default=1, ge=1, le=4)
    status: PositionStatus = PositionStatus.OPEN
    exit_price: Optional[float] = None
    exit_time: Optional[datetime] = None
    profit: Optional[float] = None
    exit_reason: Optional[ExitReason] = None

    @property
    def value(self) -> float:
        """Capital deployed in the position at entry prices."""
        return self.entry_price * self.amount

    def pnl_pct(self, current_price: float) -> float:
        """Unrealized profit in percent of the entry price."""
        return percent_change(self.entry_price, current_price)

    def hold_hours(self, now: datetime) -> float:
        return (now - self.entry_time).total_seconds() / 3600


class DipSignal(BaseModel):
    """A fired dip tier together with the prices that fired it."""

    model_config = ConfigDict(frozen=True)

    tier: int = Field(ge=1, le=4)
    threshold_pct: float
    order_size_usd: float = Field(gt=0.0)
    lookback_minutes: int
    change_pct: float
    old_price: float = Field(gt=0.0)
    current_price: float = Field(gt=0.0)


class Fill(BaseModel):
    """Result of a market order."""

    model_config = ConfigDict(frozen=True)

    filled_price: float = Field(gt=0.0)
    filled_amount: float = Field(gt=0.0)


class EngineStats(BaseModel):
    """Running counters reported when the engine stops."""

    model_config = ConfigDict(validate_assignment=True)

    cycles: int = Field(default=0, ge=0)
    dips_detected: int = Field(default=0, ge=0)
    buy_orders: int = Field(default=0, ge=0)
    buys_refused: int = Field(default=0, ge=0)
    sell_orders: int = Field(default=0, ge=0)
    total_profit: float = 0.0
    flash_crash_events: int = Field(default=0, ge=0)
    trailing_stop_triggers: int = Field(default=0, ge=0)
    support_level_buys: int = Field(default=0, ge=0)
    started_at: datetime = Field(default_factory=utc_now)
