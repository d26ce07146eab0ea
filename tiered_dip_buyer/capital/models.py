"""
Data models for order sizing and capital governance.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class RefusalReason(Enum):
    """Expected, non-exceptional reasons a buy is not authorized."""

    COOLDOWN = "cooldown"
    RAPID_BUY_CAP = "rapid_buy_cap"
    MAX_POSITION = "max_position"
    INSUFFICIENT_CAPITAL = "insufficient_capital"


class OrderSizing(BaseModel):
    """Breakdown of a computed order size."""

    model_config = ConfigDict(frozen=True)

    size_usd: int = Field(ge=0)
    base_size_usd: float
    weight_multiplier: float
    support_bonus: float = 1.0
    support_level: Optional[float] = None


class CapitalSnapshot(BaseModel):
    """Capital available to the strategy at one instant."""

    model_config = ConfigDict(frozen=True)

    free_balance: float
    reserve: float
    available_capital: float
    remaining_budget: float

    @property
    def authorized_usd(self) -> float:
        return max(0.0, min(self.available_capital, self.remaining_budget))


class BuyAuthorization(BaseModel):
    """Outcome of a governor check."""

    model_config = ConfigDict(frozen=True)

    approved: bool
    size_usd: float
    reason: Optional[RefusalReason] = None
    message: str = ""
    capital: Optional[CapitalSnapshot] = None
