"""
Unit tests for engine assembly and error boundaries.
"""

import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pytest

from tiered_dip_buyer.config.models import DipBuyerConfig, ExchangeConfig, OrderBookConfig, StoreConfig
from tiered_dip_buyer.exceptions import PositionStoreError
from tiered_dip_buyer.exchange import CcxtExchangeClient, OrderBookAdvisor, PaperExchangeClient
from tiered_dip_buyer.models import Fill
from tiered_dip_buyer.persistence import JsonPositionStore, SqlitePositionStore
from tiered_dip_buyer.strategy_engine import DipBuyerEngine, build_engine, build_exchange_client

T0 = datetime(2025, 1, 1, 12, 0, 0)


class TestBuildExchangeClient:
    """Test exchange client selection."""

    def test_live_client(self):
        client = build_exchange_client(DipBuyerConfig())
        assert isinstance(client, CcxtExchangeClient)

    def test_paper_flag_wraps_live_client(self):
        client = build_exchange_client(DipBuyerConfig(), paper=True)
        assert isinstance(client, PaperExchangeClient)
        assert isinstance(client.price_feed, CcxtExchangeClient)
        assert client.fetch_free_balance() == 10000.0

    def test_paper_trading_config(self):
        config = DipBuyerConfig(exchange=ExchangeConfig(paper_trading=True, paper_balance_usd=500.0))
        client = build_exchange_client(config)
        assert isinstance(client, PaperExchangeClient)
        assert client.fetch_free_balance() == 500.0


class TestBuildEngine:
    """Test engine assembly from configuration."""

    def test_json_store_and_advisor(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            config = DipBuyerConfig(
                store=StoreConfig(backend="json", path=temp_dir),
                order_book=OrderBookConfig(enabled=True),
            )
            engine = build_engine(config, paper=True)

            assert isinstance(engine.ledger.store, JsonPositionStore)
            assert isinstance(engine.advisor, OrderBookAdvisor)
            assert not engine.is_running

    def test_advisor_disabled_by_default(self):
        config = DipBuyerConfig(store=StoreConfig(backend="sqlite", path=":memory:"))
        engine = build_engine(config)
        assert isinstance(engine.ledger.store, SqlitePositionStore)
        assert engine.advisor is None

    def test_default_clock_is_utc(self):
        config = DipBuyerConfig(store=StoreConfig(backend="sqlite", path=":memory:"))
        engine = build_engine(config)
        assert engine.clock().tzinfo == timezone.utc


class TestProcessSymbolBoundary:
    """Test that store failures never lose or repeat an exchange fill."""

    @pytest.fixture
    def config(self):
        return DipBuyerConfig(symbols=["SOL/USD"], symbol_weights={"SOL/USD": 1.0}, support_levels={})

    @pytest.fixture
    def client(self):
        client = Mock()
        client.fetch_price.return_value = 100.0
        client.fetch_free_balance.return_value = 10000.0
        client.market_buy.return_value = Fill(filled_price=97.0, filled_amount=1.0)
        client.market_sell.return_value = Fill(filled_price=100.0, filled_amount=1.0)
        return client

    @pytest.fixture
    def store(self):
        return SqlitePositionStore(":memory:")

    @pytest.fixture
    def engine(self, config, client, store):
        engine = DipBuyerEngine(config, client, store, clock=lambda: T0, sleep=Mock())
        engine.initialize()
        engine.tracker.record("SOL/USD", 100.0, T0 - timedelta(hours=1))
        return engine

    def test_store_failure_after_buy_keeps_fill(self, engine, client, store):
        client.fetch_price.return_value = 97.0
        with patch.object(store, "insert", side_effect=PositionStoreError("disk full")):
            engine.process_symbol("SOL/USD", T0)

        position = engine.ledger.get("SOL/USD")
        assert position is not None
        assert position.amount == 1.0
        assert engine.ledger.total_deployed == pytest.approx(97.0)
        assert engine.ledger.pending_writes == 1
        assert engine.stats.buy_orders == 1

        engine.run_cycle()

        assert engine.ledger.pending_writes == 0
        assert [p.symbol for p in store.select_open()] == ["SOL/USD"]

    def test_store_failure_after_sell_does_not_sell_again(self, engine, client, store):
        client.fetch_price.return_value = 97.0
        engine.process_symbol("SOL/USD", T0)
        assert engine.ledger.get("SOL/USD") is not None

        client.fetch_price.return_value = 100.0
        with patch.object(store, "update", side_effect=PositionStoreError("disk full")):
            engine.process_symbol("SOL/USD", T0 + timedelta(minutes=1))
            engine.process_symbol("SOL/USD", T0 + timedelta(minutes=2))

        assert client.market_sell.call_count == 1
        assert engine.stats.sell_orders == 1
        assert engine.stats.total_profit == pytest.approx(3.0)
        assert engine.ledger.get("SOL/USD") is None
        assert engine.ledger.total_deployed == 0.0
        assert engine.ledger.pending_writes == 1

        assert engine.ledger.flush_pending() == 0
        assert store.select_open() == []
        assert store.select_closed()[0].exit_price == 100.0
