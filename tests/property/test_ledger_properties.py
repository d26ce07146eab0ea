"""
Property-based tests for position ledger merging and persistence.
"""

import tempfile
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from hypothesis import given, settings, strategies as st

from tiered_dip_buyer.ledger import PositionLedger
from tiered_dip_buyer.models import ExitReason
from tiered_dip_buyer.persistence import SqlitePositionStore
from tiered_dip_buyer.symbol_state import SymbolStateBook

T0 = datetime(2025, 1, 1, 0, 0, 0)
SYMBOLS = ["BTC/USD", "ETH/USD", "SOL/USD"]

fill_strategy = st.tuples(
    st.sampled_from(SYMBOLS),
    st.floats(min_value=0.5, max_value=100000.0, allow_nan=False),
    st.floats(min_value=0.0001, max_value=10.0, allow_nan=False),
    st.integers(min_value=1, max_value=4),
)


class TestLedgerProperties:
    """Property-based tests for PositionLedger."""

    @given(fills=st.lists(fill_strategy, min_size=1, max_size=25))
    @settings(max_examples=50, deadline=None)
    def test_merge_and_restart_consistency(self, fills):
        """
        Merged positions hold the amount-weighted average entry, the max tier and
        the summed amount; total deployed equals the sum of open values, also
        after reloading from the store.
        """
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = str(Path(temp_dir) / "positions.db")
            store = SqlitePositionStore(db_path)
            ledger = PositionLedger(store, SymbolStateBook(SYMBOLS))
            ledger.load()

            for i, (symbol, price, amount, tier) in enumerate(fills):
                ledger.open_or_merge(symbol, price, amount, tier, T0 + timedelta(minutes=i))

            for symbol in {f[0] for f in fills}:
                symbol_fills = [f for f in fills if f[0] == symbol]
                position = ledger.get(symbol)
                amount = sum(f[2] for f in symbol_fills)
                value = sum(f[1] * f[2] for f in symbol_fills)

                assert position.amount == pytest.approx(amount)
                assert position.entry_price == pytest.approx(value / amount)
                assert position.entry_tier == max(f[3] for f in symbol_fills)
                assert min(f[1] for f in symbol_fills) * (1 - 1e-9) <= position.entry_price
                assert position.entry_price <= max(f[1] for f in symbol_fills) * (1 + 1e-9)

            open_value = sum(p.value for p in ledger.open_positions())
            assert ledger.total_deployed == pytest.approx(open_value)
            store.close()

            reloaded = PositionLedger(SqlitePositionStore(db_path), SymbolStateBook(SYMBOLS))
            reloaded.load()
            assert reloaded.total_deployed == pytest.approx(open_value)
            assert {p.symbol for p in reloaded.open_positions()} == {f[0] for f in fills}
            reloaded.store.close()

    @given(fills=st.lists(fill_strategy, min_size=1, max_size=15),
           exit_price=st.floats(min_value=0.5, max_value=100000.0, allow_nan=False))
    @settings(max_examples=50, deadline=None)
    def test_at_most_one_open_position_per_symbol(self, fills, exit_price):
        """Each symbol has at most one open row; closing every position returns deployed to zero."""
        store = SqlitePositionStore(":memory:")
        ledger = PositionLedger(store, SymbolStateBook(SYMBOLS))
        ledger.load()

        for symbol, price, amount, tier in fills:
            ledger.open_or_merge(symbol, price, amount, tier, T0)

        open_rows = store.select_open()
        assert len(open_rows) == len({r.symbol for r in open_rows})

        for position in ledger.open_positions():
            ledger.close(position.symbol, exit_price, ExitReason.STOP_LOSS, T0)

        assert ledger.total_deployed == 0.0
        assert store.select_open() == []
        assert len(store.select_closed()) == len({f[0] for f in fills})
