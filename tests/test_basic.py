"""
Basic test to verify the testing framework is working.
"""

from tiered_dip_buyer.config.models import DipBuyerConfig


def test_dip_buyer_config_creation():
    """Test that DipBuyerConfig can be created with defaults."""
    config = DipBuyerConfig()

    assert config.symbols == ["BTC/USD", "ETH/USD", "SOL/USD"]
    assert [t.threshold_pct for t in config.tiers] == [-3.0, -5.0, -8.0, -12.0]
    assert config.max_total_deployed == 2500.0
    assert config.check_interval_seconds == 15.0
    assert config.flash_crash.trigger_pct == -5.0


def test_dip_buyer_config_validation():
    """Test that DipBuyerConfig accepts custom parameters."""
    config = DipBuyerConfig(
        symbols=["BTC/USD"],
        symbol_weights={"BTC/USD": 1.0},
        support_levels={},
        max_position_usd=500.0,
        stop_loss_pct=-5.0,
    )

    assert config.symbols == ["BTC/USD"]
    assert config.max_position_usd == 500.0
    assert config.stop_loss_pct == -5.0
    assert config.take_profit_target(2) == 4.0
