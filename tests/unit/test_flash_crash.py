"""
Unit tests for the flash-crash mode controller.
"""

from datetime import datetime, timedelta

import pytest

from tiered_dip_buyer.config.models import FlashCrashConfig
from tiered_dip_buyer.dip_detection import FlashCrashController, FlashCrashTransition
from tiered_dip_buyer.models import DipSignal
from tiered_dip_buyer.price_history import PriceHistoryTracker
from tiered_dip_buyer.symbol_state import SymbolStateBook

T0 = datetime(2025, 1, 1, 12, 0, 0)
SYMBOL = "SOL/USD"


def make_signal(change_pct: float, tier: int = 2) -> DipSignal:
    return DipSignal(
        tier=tier,
        threshold_pct=-5.0,
        order_size_usd=200.0,
        lookback_minutes=120,
        change_pct=change_pct,
        old_price=100.0,
        current_price=100.0 * (1 + change_pct / 100),
    )


class TestFlashCrashController:
    """Test FlashCrashController state machine."""

    @pytest.fixture
    def states(self):
        return SymbolStateBook([SYMBOL, "BTC/USD"])

    @pytest.fixture
    def tracker(self, states):
        return PriceHistoryTracker(states)

    @pytest.fixture
    def controller(self, tracker):
        return FlashCrashController(FlashCrashConfig(), tracker)

    def test_starts_normal(self, controller, states):
        assert not states[SYMBOL].flash_crash_active

    def test_activates_at_trigger(self, controller, states):
        state = states[SYMBOL]
        state.rapid_buy_count = 3

        transition = controller.update(state, make_signal(-5.0), T0)

        assert transition == FlashCrashTransition.ACTIVATED
        assert state.flash_crash_active
        assert state.flash_crash_started_at == T0
        assert state.rapid_buy_count == 0

    def test_signal_above_trigger_does_not_activate(self, controller, states):
        state = states[SYMBOL]
        assert controller.update(state, make_signal(-3.5, tier=1), T0) is None
        assert not state.flash_crash_active

    def test_disabled_never_activates(self, tracker, states):
        controller = FlashCrashController(FlashCrashConfig(enabled=False), tracker)
        state = states[SYMBOL]
        assert controller.update(state, make_signal(-15.0, tier=4), T0) is None
        assert not state.flash_crash_active

    def test_already_active_is_not_reactivated(self, controller, states):
        state = states[SYMBOL]
        controller.update(state, make_signal(-6.0), T0)
        state.rapid_buy_count = 2

        assert controller.update(state, make_signal(-7.0), T0 + timedelta(minutes=1)) is None
        assert state.rapid_buy_count == 2
        assert state.flash_crash_started_at == T0

    def test_recovery_ends_episode(self, controller, tracker, states):
        state = states[SYMBOL]
        controller.update(state, make_signal(-6.0), T0)
        tracker.record(SYMBOL, 100.0, T0)
        tracker.record(SYMBOL, 98.5, T0 + timedelta(minutes=5))

        transition = controller.update(state, None, T0 + timedelta(minutes=5))

        assert transition == FlashCrashTransition.ENDED
        assert not state.flash_crash_active
        assert state.rapid_buy_count == 0

    def test_no_recovery_while_history_still_down(self, controller, tracker, states):
        state = states[SYMBOL]
        controller.update(state, make_signal(-6.0), T0)
        tracker.record(SYMBOL, 100.0, T0)
        tracker.record(SYMBOL, 97.0, T0 + timedelta(minutes=5))

        assert controller.update(state, None, T0 + timedelta(minutes=5)) is None
        assert state.flash_crash_active

    def test_recovery_exactly_at_threshold_stays_active(self, controller, tracker, states):
        state = states[SYMBOL]
        controller.update(state, make_signal(-6.0), T0)
        tracker.record(SYMBOL, 100.0, T0)
        tracker.record(SYMBOL, 98.0, T0 + timedelta(minutes=5))

        assert controller.update(state, None, T0 + timedelta(minutes=5)) is None
        assert state.flash_crash_active

    def test_recovery_not_checked_while_tier_fires(self, controller, tracker, states):
        state = states[SYMBOL]
        controller.update(state, make_signal(-6.0), T0)
        tracker.record(SYMBOL, 100.0, T0)
        tracker.record(SYMBOL, 101.0, T0 + timedelta(minutes=5))

        assert controller.update(state, make_signal(-3.2, tier=1), T0 + timedelta(minutes=5)) is None
        assert state.flash_crash_active

    def test_episode_expires_after_limit(self, tracker, states):
        controller = FlashCrashController(FlashCrashConfig(max_episode_minutes=30), tracker)
        state = states[SYMBOL]
        controller.update(state, make_signal(-6.0), T0)

        assert controller.update(state, None, T0 + timedelta(minutes=29)) is None
        transition = controller.update(state, None, T0 + timedelta(minutes=30))

        assert transition == FlashCrashTransition.EXPIRED
        assert not state.flash_crash_active

    def test_expired_episode_can_reactivate_same_cycle(self, tracker, states):
        controller = FlashCrashController(FlashCrashConfig(max_episode_minutes=30), tracker)
        state = states[SYMBOL]
        controller.update(state, make_signal(-6.0), T0)

        transition = controller.update(state, make_signal(-9.0, tier=3), T0 + timedelta(minutes=45))

        assert transition == FlashCrashTransition.ACTIVATED
        assert state.flash_crash_started_at == T0 + timedelta(minutes=45)

    def test_cadence_depends_on_mode(self, controller, states):
        state = states[SYMBOL]
        assert controller.min_time_between_buys(state, 120.0) == 120.0
        controller.update(state, make_signal(-6.0), T0)
        assert controller.min_time_between_buys(state, 120.0) == 60.0

    def test_rapid_buy_cap(self, controller, states):
        state = states[SYMBOL]
        controller.record_buy(state)
        assert state.rapid_buy_count == 0

        controller.update(state, make_signal(-6.0), T0)
        for _ in range(4):
            controller.record_buy(state)
        assert not controller.rapid_buy_cap_reached(state)

        controller.record_buy(state)
        assert state.rapid_buy_count == 5
        assert controller.rapid_buy_cap_reached(state)

    def test_states_are_per_symbol(self, controller, states):
        controller.update(states[SYMBOL], make_signal(-6.0), T0)
        assert states.any_flash_crash_active()
        assert not states["BTC/USD"].flash_crash_active
