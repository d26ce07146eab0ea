"""
Unit tests for multi-tier dip detection.
"""

from datetime import datetime, timedelta

import pytest

from tiered_dip_buyer.config.models import DipBuyerConfig, TierConfig
from tiered_dip_buyer.dip_detection import DipTierDetector
from tiered_dip_buyer.models import percent_change
from tiered_dip_buyer.price_history import PriceHistoryTracker
from tiered_dip_buyer.symbol_state import SymbolStateBook

T0 = datetime(2025, 1, 1, 12, 0, 0)
SYMBOL = "BTC/USD"


class TestDipTierDetector:
    """Test DipTierDetector class."""

    @pytest.fixture
    def tracker(self):
        return PriceHistoryTracker(SymbolStateBook([SYMBOL]), retention_hours=12)

    @pytest.fixture
    def detector(self, tracker):
        return DipTierDetector(DipBuyerConfig().tiers, tracker)

    @pytest.fixture
    def short_tiers_detector(self, tracker):
        tiers = [
            TierConfig(tier=1, threshold_pct=-3.0, lookback_minutes=10, order_size_usd=100.0),
            TierConfig(tier=2, threshold_pct=-5.0, lookback_minutes=20, order_size_usd=200.0),
            TierConfig(tier=3, threshold_pct=-8.0, lookback_minutes=30, order_size_usd=400.0),
            TierConfig(tier=4, threshold_pct=-12.0, lookback_minutes=60, order_size_usd=600.0),
        ]
        return DipTierDetector(tiers, tracker)

    def test_empty_history_returns_none(self, detector):
        assert detector.detect(SYMBOL, T0) is None

    def test_single_sample_returns_none(self, detector, tracker):
        tracker.record(SYMBOL, 100.0, T0)
        assert detector.detect(SYMBOL, T0 + timedelta(hours=2)) is None

    def test_exact_threshold_fires(self, short_tiers_detector, tracker):
        """A -3% drop over a 10 minute lookback fires tier 1."""
        tracker.record(SYMBOL, 100.0, T0)
        now = T0 + timedelta(minutes=10)
        tracker.record(SYMBOL, 97.0, now)

        signal = short_tiers_detector.detect(SYMBOL, now)

        assert signal is not None
        assert signal.tier == 1
        assert signal.change_pct == pytest.approx(-3.0)
        assert signal.old_price == 100.0
        assert signal.current_price == 97.0
        assert signal.order_size_usd == 100.0

    @pytest.mark.parametrize("old_price,current_price,expected", [
        (100.0, 97.0, -3.0),
        (80000.0, 77600.0, -3.0),
        (2450.0, 2376.5, -3.0),
        (100.0, 88.0, -12.0),
    ])
    def test_percent_change_lands_on_threshold(self, old_price, current_price, expected):
        assert percent_change(old_price, current_price) == expected

    def test_exact_threshold_fires_at_large_prices(self, short_tiers_detector, tracker):
        tracker.record(SYMBOL, 80000.0, T0)
        now = T0 + timedelta(minutes=10)
        tracker.record(SYMBOL, 77600.0, now)

        signal = short_tiers_detector.detect(SYMBOL, now)

        assert signal is not None
        assert signal.tier == 1

    def test_just_above_threshold_does_not_fire(self, short_tiers_detector, tracker):
        tracker.record(SYMBOL, 100.0, T0)
        now = T0 + timedelta(minutes=10)
        tracker.record(SYMBOL, 97.01, now)
        assert short_tiers_detector.detect(SYMBOL, now) is None

    def test_lookback_not_yet_covered(self, detector, tracker):
        """A drop within less than the shortest lookback cannot fire."""
        tracker.record(SYMBOL, 100.0, T0)
        now = T0 + timedelta(minutes=30)
        tracker.record(SYMBOL, 80.0, now)
        assert detector.detect(SYMBOL, now) is None

    def test_most_severe_tier_wins(self, detector, tracker):
        """A 9% drop against -3/-5/-8/-12 resolves to tier 3."""
        tracker.record(SYMBOL, 100.0, T0)
        now = T0 + timedelta(hours=5)
        tracker.record(SYMBOL, 91.0, now)

        signal = detector.detect(SYMBOL, now)

        assert signal.tier == 3
        assert signal.threshold_pct == -8.0
        assert signal.lookback_minutes == 240

    def test_reference_is_newest_sample_at_or_before_horizon(self, short_tiers_detector, tracker):
        tracker.record(SYMBOL, 120.0, T0)
        tracker.record(SYMBOL, 100.0, T0 + timedelta(minutes=5))
        tracker.record(SYMBOL, 99.0, T0 + timedelta(minutes=12))
        now = T0 + timedelta(minutes=15)
        tracker.record(SYMBOL, 96.5, now)

        signal = short_tiers_detector.detect(SYMBOL, now)

        # Tier 1 horizon is minute 5 -> reference 100.0, not the older 120.0
        assert signal.tier == 1
        assert signal.old_price == 100.0
        assert signal.change_pct == pytest.approx(-3.5)

    def test_longer_lookback_tier_uses_its_own_reference(self, short_tiers_detector, tracker):
        tracker.record(SYMBOL, 100.0, T0)
        tracker.record(SYMBOL, 90.0, T0 + timedelta(minutes=50))
        now = T0 + timedelta(minutes=60)
        tracker.record(SYMBOL, 87.0, now)

        signal = short_tiers_detector.detect(SYMBOL, now)

        assert signal.tier == 4
        assert signal.old_price == 100.0
        assert signal.change_pct == pytest.approx(-13.0)

    def test_price_rise_does_not_fire(self, detector, tracker):
        tracker.record(SYMBOL, 100.0, T0)
        now = T0 + timedelta(hours=9)
        tracker.record(SYMBOL, 110.0, now)
        assert detector.detect(SYMBOL, now) is None
