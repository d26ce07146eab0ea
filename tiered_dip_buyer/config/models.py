"""
Configuration models using Pydantic for validation.
"""

from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Dict, List, Literal, Optional


WEIGHT_SUM_TOLERANCE = 0.01


class TierConfig(BaseModel):
    """One dip-severity tier."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tier: int = Field(ge=1, le=4, description="Tier number, 4 is the most severe")
    threshold_pct: float = Field(lt=0.0, description="Percentage change that triggers the tier")
    lookback_minutes: int = Field(gt=0, description="Window the change is measured over")
    order_size_usd: float = Field(gt=0.0, description="Base order size in quote currency")


class FlashCrashConfig(BaseModel):
    """Rapid-fire buying during severe crashes."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    trigger_pct: float = Field(default=-5.0, lt=0.0)
    min_time_between_buys_seconds: float = Field(default=60.0, ge=0.0)
    max_rapid_buys: int = Field(default=5, ge=1)
    recovery_pct: float = Field(
        default=-2.0,
        le=0.0,
        description="Full-history change above which the episode ends"
    )
    max_episode_minutes: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Optional hard limit on how long an episode stays active"
    )


class TrailingStopConfig(BaseModel):
    """Trailing stop armed once a position is in profit."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    activation_pct: float = Field(default=2.0, gt=0.0)
    trail_pct: float = Field(default=1.5, gt=0.0, lt=100.0)


class DynamicReserveConfig(BaseModel):
    """Capital reserve that grows while any symbol is in a flash crash."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True
    high_volatility_reserve: float = Field(default=2500.0, ge=0.0)
    low_volatility_reserve: float = Field(default=1500.0, ge=0.0)


class SupportLevel(BaseModel):
    """Static support price and the order-size bonus applied near it."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    price: float = Field(gt=0.0)
    bonus: float = Field(default=1.0, gt=0.0)


class ExchangeConfig(BaseModel):
    """Exchange connection settings. Credentials come from the environment."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default="binanceus", description="CCXT exchange id")
    quote_currency: str = "USD"
    timeout_ms: int = Field(default=10000, gt=0)
    paper_trading: bool = False
    paper_balance_usd: float = Field(default=10000.0, ge=0.0)


class OrderBookConfig(BaseModel):
    """Order book advisor settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = False
    depth_levels: int = Field(default=20, ge=1)
    cluster_distance: float = Field(default=0.002, gt=0.0)
    min_significant_volume: float = Field(default=1000.0, ge=0.0)
    max_levels: int = Field(default=5, ge=1)
    cache_seconds: float = Field(default=10.0, ge=0.0)


class StoreConfig(BaseModel):
    """Position store backend."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    backend: Literal["sqlite", "json"] = "sqlite"
    path: Optional[str] = Field(
        default=None,
        description="Database file (sqlite) or directory (json). Defaults under ~/.tiered_dip_buyer"
    )


def _default_tiers() -> List[TierConfig]:
    return [
        TierConfig(tier=1, threshold_pct=-3.0, lookback_minutes=60, order_size_usd=100.0),
        TierConfig(tier=2, threshold_pct=-5.0, lookback_minutes=120, order_size_usd=200.0),
        TierConfig(tier=3, threshold_pct=-8.0, lookback_minutes=240, order_size_usd=400.0),
        TierConfig(tier=4, threshold_pct=-12.0, lookback_minutes=480, order_size_usd=600.0),
    ]


def _default_support_levels() -> Dict[str, List[SupportLevel]]:
    bonuses = (1.5, 2.0, 3.0)
    levels = {
        "BTC/USD": (82000.0, 78000.0, 75000.0),
        "ETH/USD": (2700.0, 2500.0, 2250.0),
        "SOL/USD": (117.0, 110.0, 100.0),
    }
    return {
        symbol: [SupportLevel(price=p, bonus=b) for p, b in zip(prices, bonuses)]
        for symbol, prices in levels.items()
    }


class DipBuyerConfig(BaseModel):
    """Complete, immutable configuration for the dip-accumulation engine."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    symbols: List[str] = Field(
        default_factory=lambda: ["BTC/USD", "ETH/USD", "SOL/USD"],
        min_length=1,
        description="Symbols to monitor, processed in this order"
    )
    tiers: List[TierConfig] = Field(default_factory=_default_tiers)
    flash_crash: FlashCrashConfig = Field(default_factory=FlashCrashConfig)
    trailing_stop: TrailingStopConfig = Field(default_factory=TrailingStopConfig)

    take_profit_by_tier: Dict[int, float] = Field(
        default_factory=lambda: {1: 2.5, 2: 4.0, 3: 6.0, 4: 10.0}
    )
    take_profit_pct: float = Field(default=3.5, gt=0.0, description="Fallback take-profit target")
    stop_loss_pct: float = Field(default=-8.0, lt=0.0)
    max_hold_hours: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Enable time-based exits after this many hours (None disables)"
    )
    time_based_exit_pct: float = Field(
        default=0.5,
        description="Minimum profit accepted by a time-based exit"
    )

    max_position_usd: float = Field(default=800.0, gt=0.0)
    max_total_deployed: float = Field(default=2500.0, gt=0.0)
    min_usd_reserve: float = Field(default=1800.0, ge=0.0)
    dynamic_reserve: DynamicReserveConfig = Field(default_factory=DynamicReserveConfig)

    symbol_weights: Dict[str, float] = Field(
        default_factory=lambda: {"BTC/USD": 0.30, "ETH/USD": 0.20, "SOL/USD": 0.50}
    )
    support_levels: Dict[str, List[SupportLevel]] = Field(default_factory=_default_support_levels)
    support_tolerance_pct: float = Field(default=2.0, ge=0.0, lt=100.0)

    check_interval_seconds: float = Field(default=15.0, gt=0.0)
    min_time_between_buys_seconds: float = Field(default=120.0, ge=0.0)
    inter_symbol_delay_seconds: float = Field(default=0.3, ge=0.0)
    price_retention_hours: float = Field(default=12.0, gt=0.0)

    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    order_book: OrderBookConfig = Field(default_factory=OrderBookConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)

    @model_validator(mode="after")
    def _check_tiers(self) -> "DipBuyerConfig":
        numbers = sorted(t.tier for t in self.tiers)
        if numbers != [1, 2, 3, 4]:
            raise ValueError(f"exactly one config per tier 1-4 is required, got tiers {numbers}")

        ordered = sorted(self.tiers, key=lambda t: t.tier)
        for lower, higher in zip(ordered, ordered[1:]):
            if higher.threshold_pct >= lower.threshold_pct:
                raise ValueError(
                    f"tier {higher.tier} threshold ({higher.threshold_pct}%) must be more severe "
                    f"than tier {lower.tier} ({lower.threshold_pct}%)"
                )

        retention_minutes = self.price_retention_hours * 60
        for tier in ordered:
            if tier.lookback_minutes > retention_minutes:
                raise ValueError(
                    f"tier {tier.tier} lookback of {tier.lookback_minutes} min exceeds the "
                    f"{self.price_retention_hours}h price retention window"
                )

        unknown = set(self.take_profit_by_tier) - {1, 2, 3, 4}
        if unknown:
            raise ValueError(f"take_profit_by_tier has unknown tiers: {sorted(unknown)}")
        return self

    @model_validator(mode="after")
    def _check_symbols_and_weights(self) -> "DipBuyerConfig":
        if len(set(self.symbols)) != len(self.symbols):
            raise ValueError("symbols must be unique")

        missing = [s for s in self.symbols if s not in self.symbol_weights]
        if missing:
            raise ValueError(f"symbol_weights missing for: {', '.join(missing)}")

        extra = set(self.symbol_weights) - set(self.symbols)
        if extra:
            raise ValueError(f"symbol_weights given for unconfigured symbols: {sorted(extra)}")

        for symbol, weight in self.symbol_weights.items():
            if weight <= 0:
                raise ValueError(f"symbol weight for {symbol} must be positive, got {weight}")

        total = sum(self.symbol_weights.values())
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"symbol_weights must sum to 1.0, got {total:.4f}")

        extra = set(self.support_levels) - set(self.symbols)
        if extra:
            raise ValueError(f"support_levels given for unconfigured symbols: {sorted(extra)}")
        return self

    @model_validator(mode="after")
    def _check_flash_crash(self) -> "DipBuyerConfig":
        tier_1 = next(t for t in self.tiers if t.tier == 1)
        if self.flash_crash.trigger_pct >= tier_1.threshold_pct:
            raise ValueError(
                f"flash_crash.trigger_pct ({self.flash_crash.trigger_pct}%) must be more severe "
                f"than the tier 1 threshold ({tier_1.threshold_pct}%)"
            )
        if self.flash_crash.recovery_pct <= self.flash_crash.trigger_pct:
            raise ValueError("flash_crash.recovery_pct must be above flash_crash.trigger_pct")
        return self

    def take_profit_target(self, tier: int) -> float:
        """Take-profit target for a position entered at the given tier."""
        return self.take_profit_by_tier.get(tier, self.take_profit_pct)
