"""
Tests for the Ledger Engine
"""

import pytest

from core.ledger import Holding, LedgerEngine, replay_trades
from core.store import TRADES
from market_client.errors import (
    InsufficientFunds,
    InsufficientHoldings,
    ProviderUnavailable,
    StoreUnavailable,
)
from market_client.models import TradeRecord, TradeSide


def make_trade(trade_id, symbol, side, qty, price, timestamp):
    return TradeRecord(
        id=trade_id,
        symbol=symbol,
        side=side,
        qty=qty,
        price=price,
        timestamp=timestamp,
    )


class TestHolding:
    """Tests for Holding valuation."""

    def test_valuation(self):
        holding = Holding(qty=10, avg_price=150.0)

        assert holding.cost_basis == 1500.0
        assert holding.market_value(160.0) == 1600.0
        assert holding.unrealized_pnl(160.0) == 100.0
        assert holding.unrealized_pnl(140.0) == -100.0


class TestReplay:
    """Tests for the trade log fold."""

    def test_empty_log_is_seed_cash(self):
        state = replay_trades([], seed_cash=10000.0)

        assert state.cash == 10000.0
        assert state.holdings == {}

    def test_weighted_average_price(self):
        trades = [
            make_trade("t1", "AAPL", TradeSide.BUY, 10, 100.0, 1),
            make_trade("t2", "AAPL", TradeSide.BUY, 30, 200.0, 2),
        ]

        state = replay_trades(trades, seed_cash=10000.0)

        assert state.holdings["AAPL"].qty == 40
        assert state.holdings["AAPL"].avg_price == pytest.approx(175.0)
        assert state.cash == pytest.approx(10000.0 - 1000.0 - 6000.0)

    def test_partial_sell_keeps_average(self):
        trades = [
            make_trade("t1", "AAPL", TradeSide.BUY, 10, 100.0, 1),
            make_trade("t2", "AAPL", TradeSide.SELL, 4, 120.0, 2),
        ]

        state = replay_trades(trades, seed_cash=10000.0)

        assert state.holdings["AAPL"].qty == 6
        assert state.holdings["AAPL"].avg_price == 100.0
        assert state.cash == pytest.approx(10000.0 - 1000.0 + 480.0)

    def test_full_close_drops_holding(self):
        trades = [
            make_trade("t1", "AAPL", TradeSide.BUY, 10, 100.0, 1),
            make_trade("t2", "AAPL", TradeSide.SELL, 10, 110.0, 2),
            make_trade("t3", "AAPL", TradeSide.BUY, 1, 50.0, 3),
        ]

        state = replay_trades(trades, seed_cash=10000.0)

        # Average restarts after a full close
        assert state.holdings["AAPL"].avg_price == 50.0
        assert state.cash == pytest.approx(10000.0 - 1000.0 + 1100.0 - 50.0)

    def test_applied_in_timestamp_order(self):
        trades = [
            make_trade("t2", "AAPL", TradeSide.SELL, 10, 110.0, 2),
            make_trade("t1", "AAPL", TradeSide.BUY, 10, 100.0, 1),
        ]

        state = replay_trades(trades, seed_cash=10000.0)

        assert state.holdings == {}
        assert state.cash == pytest.approx(10100.0)

    def test_sell_without_holding_only_moves_cash(self):
        trades = [make_trade("t1", "AAPL", TradeSide.SELL, 1, 100.0, 1)]

        state = replay_trades(trades, seed_cash=0.0)

        assert state.cash == 100.0
        assert state.holdings == {}

    def test_round_trip_restores_cash_exactly(self):
        trades = [
            make_trade("t1", "NVDA", TradeSide.BUY, 2, 156.01, 1),
            make_trade("t2", "NVDA", TradeSide.SELL, 2, 156.01, 2),
        ]

        state = replay_trades(trades, seed_cash=4737.71)

        assert state.cash == 4737.71
        assert state.holdings == {}

    def test_cent_prices_accumulate_exactly(self):
        trades = [
            make_trade(f"t{i}", "F", TradeSide.BUY, 1, 0.1, i)
            for i in range(10)
        ]

        state = replay_trades(trades, seed_cash=1.0)

        assert state.cash == 0.0
        assert state.holdings["F"].avg_price == 0.1

    def test_replay_is_deterministic(self):
        trades = [
            make_trade("t1", "AAPL", TradeSide.BUY, 3, 100.0, 5),
            make_trade("t2", "NVDA", TradeSide.BUY, 2, 450.0, 5),
            make_trade("t3", "AAPL", TradeSide.SELL, 1, 105.0, 6),
        ]

        first = replay_trades(trades, seed_cash=10000.0)
        second = replay_trades(trades, seed_cash=10000.0)

        assert first.to_dict() == second.to_dict()


class TestExecuteTrade:
    """Tests for trade validation and recording."""

    @pytest.mark.asyncio
    async def test_buy_and_sell_round_trip(self, ledger: LedgerEngine, set_price):
        await set_price("AAPL", 150.0)

        message = await ledger.execute_trade("aapl", "buy", 10)
        assert message == "BUY 10 AAPL @ $150.00 completed"

        portfolio = await ledger.get_portfolio()
        assert portfolio.cash == 8500.0
        assert portfolio.holdings["AAPL"].qty == 10

        await ledger.execute_trade("AAPL", TradeSide.SELL, 10)
        portfolio = await ledger.get_portfolio()
        assert portfolio.cash == 10000.0
        assert "AAPL" not in portfolio.holdings

    @pytest.mark.asyncio
    async def test_price_comes_from_quote(self, ledger: LedgerEngine, set_price):
        await set_price("NVDA", 450.25)

        await ledger.execute_trade("NVDA", "BUY", 2, note="earnings play")

        trades = await ledger.get_trades()
        assert len(trades) == 1
        assert trades[0].price == 450.25
        assert trades[0].note == "earnings play"
        assert trades[0].id.startswith("trade-")

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, ledger: LedgerEngine, set_price):
        await set_price("BRK-A", 600000.0)

        with pytest.raises(InsufficientFunds) as excinfo:
            await ledger.execute_trade("BRK-A", "BUY", 1)

        assert excinfo.value.available == 10000.0
        assert await ledger.get_trades() == []

    @pytest.mark.asyncio
    async def test_insufficient_holdings_leaves_log_unchanged(self, ledger: LedgerEngine, set_price, store):
        await set_price("AAPL", 100.0)
        await ledger.execute_trade("AAPL", "BUY", 5)

        with pytest.raises(InsufficientHoldings):
            await ledger.execute_trade("AAPL", "SELL", 6)

        assert len(await store.get_all(TRADES)) == 1

    @pytest.mark.asyncio
    async def test_sell_unheld_symbol(self, ledger: LedgerEngine, set_price):
        await set_price("TSLA", 200.0)

        with pytest.raises(InsufficientHoldings):
            await ledger.execute_trade("TSLA", "SELL", 1)

    @pytest.mark.asyncio
    async def test_no_quote_is_provider_unavailable(self, ledger: LedgerEngine):
        with pytest.raises(ProviderUnavailable):
            await ledger.execute_trade("AAPL", "BUY", 1)

    @pytest.mark.asyncio
    async def test_non_positive_quantity(self, ledger: LedgerEngine, set_price):
        await set_price("AAPL", 100.0)

        with pytest.raises(ValueError):
            await ledger.execute_trade("AAPL", "BUY", 0)
        with pytest.raises(ValueError):
            await ledger.execute_trade("AAPL", "BUY", -3)

    @pytest.mark.asyncio
    async def test_unknown_side(self, ledger: LedgerEngine, set_price):
        await set_price("AAPL", 100.0)

        with pytest.raises(ValueError):
            await ledger.execute_trade("AAPL", "SHORT", 1)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("qty", [float("nan"), float("inf"), float("-inf")])
    async def test_non_finite_quantity(self, ledger: LedgerEngine, set_price, store, qty):
        await set_price("AAPL", 150.0)

        with pytest.raises(ValueError):
            await ledger.execute_trade("AAPL", "BUY", qty)

        assert await store.get_all(TRADES) == []
        assert (await ledger.get_portfolio()).cash == 10000.0

    @pytest.mark.asyncio
    async def test_round_trip_from_uneven_balance(self, store, market_data, clock, set_price):
        ledger = LedgerEngine(store, market_data, seed_cash=4737.71, clock=clock)
        await set_price("NVDA", 156.01)

        await ledger.execute_trade("NVDA", "BUY", 2)
        await ledger.execute_trade("NVDA", "SELL", 2)

        assert (await ledger.get_portfolio()).cash == 4737.71

    @pytest.mark.asyncio
    async def test_buy_with_exactly_enough_cash(self, store, market_data, clock, set_price):
        ledger = LedgerEngine(store, market_data, seed_cash=312.02, clock=clock)
        await set_price("NVDA", 156.01)

        await ledger.execute_trade("NVDA", "BUY", 2)

        assert (await ledger.get_portfolio()).cash == 0.0

    @pytest.mark.asyncio
    async def test_subscribers_notified(self, ledger: LedgerEngine, set_price):
        await set_price("AAPL", 100.0)
        calls = []
        ledger.subscribe(lambda: calls.append(1))

        await ledger.execute_trade("AAPL", "BUY", 1)
        await ledger.reset_account()

        assert calls == [1, 1]

    @pytest.mark.asyncio
    async def test_equal_timestamps_keep_log_order(self, ledger: LedgerEngine, set_price):
        # The fake clock does not advance, so every trade shares a timestamp
        await set_price("AAPL", 100.0)
        await ledger.execute_trade("AAPL", "BUY", 5)
        await ledger.execute_trade("AAPL", "SELL", 5)
        await ledger.execute_trade("AAPL", "BUY", 2)

        sides = [t.side for t in await ledger.get_trades()]
        portfolio = await ledger.get_portfolio()

        assert sides == [TradeSide.BUY, TradeSide.SELL, TradeSide.BUY]
        assert portfolio.holdings["AAPL"].qty == 2


class TestAccount:
    """End-to-end account scenarios."""

    @pytest.mark.asyncio
    async def test_scale_in_and_exit(self, ledger: LedgerEngine, set_price, clock):
        await set_price("AAPL", 150.0)
        await ledger.execute_trade("AAPL", "BUY", 10)
        assert (await ledger.get_portfolio()).cash == 8500.0

        clock.advance(60)
        await set_price("AAPL", 180.0)
        await ledger.execute_trade("AAPL", "BUY", 5)

        holding = (await ledger.get_portfolio()).holdings["AAPL"]
        assert holding.qty == 15
        assert holding.avg_price == pytest.approx(160.0)

        clock.advance(60)
        await set_price("AAPL", 220.0)
        await ledger.execute_trade("AAPL", "SELL", 15)

        portfolio = await ledger.get_portfolio()
        assert portfolio.cash == pytest.approx(10900.0)
        assert portfolio.holdings == {}

    @pytest.mark.asyncio
    async def test_reset_restores_seed_cash(self, ledger: LedgerEngine, set_price):
        await set_price("AAPL", 100.0)
        await ledger.execute_trade("AAPL", "BUY", 10)
        await ledger.execute_trade("AAPL", "BUY", 5)

        assert await ledger.reset_account() == 2

        portfolio = await ledger.get_portfolio()
        assert portfolio.cash == 10000.0
        assert portfolio.holdings == {}

    @pytest.mark.asyncio
    async def test_summary_values_at_current_quote(self, ledger: LedgerEngine, set_price):
        await set_price("AAPL", 100.0)
        await ledger.execute_trade("AAPL", "BUY", 10)
        await set_price("AAPL", 120.0)

        summary = await ledger.get_summary()

        assert summary["cash"] == 9000.0
        assert summary["holdings"]["AAPL"]["price"] == 120.0
        assert summary["holdings_value"] == 1200.0
        assert summary["unrealized_pnl"] == 200.0
        assert summary["equity"] == 10200.0
        assert summary["total_return"] == 200.0
        assert summary["total_trades"] == 1


class TestTradeRecord:
    """Tests for TradeRecord invariants."""

    @pytest.mark.parametrize("qty", [0, -1, float("nan"), float("inf")])
    def test_rejects_bad_quantity(self, qty):
        with pytest.raises(ValueError):
            make_trade("t1", "AAPL", TradeSide.BUY, qty, 100.0, 1)

    @pytest.mark.parametrize("price", [0, -5.0, float("nan"), float("inf")])
    def test_rejects_bad_price(self, price):
        with pytest.raises(ValueError):
            make_trade("t1", "AAPL", TradeSide.BUY, 1, price, 1)


class TestStoreFailure:
    """A trade log that cannot be read stops the computation."""

    @staticmethod
    def break_store(store, monkeypatch):
        async def failing_get_all(collection):
            raise StoreUnavailable("database is locked")

        monkeypatch.setattr(store, "get_all", failing_get_all)

    @pytest.mark.asyncio
    async def test_get_portfolio_raises(self, ledger: LedgerEngine, store, monkeypatch):
        self.break_store(store, monkeypatch)

        with pytest.raises(StoreUnavailable):
            await ledger.get_portfolio()

    @pytest.mark.asyncio
    async def test_get_summary_raises(self, ledger: LedgerEngine, store, monkeypatch):
        self.break_store(store, monkeypatch)

        with pytest.raises(StoreUnavailable):
            await ledger.get_summary()

    @pytest.mark.asyncio
    async def test_execute_trade_raises_and_appends_nothing(
        self, ledger: LedgerEngine, set_price, store, monkeypatch
    ):
        await set_price("AAPL", 100.0)
        calls = []
        ledger.subscribe(lambda: calls.append(1))
        self.break_store(store, monkeypatch)

        with pytest.raises(StoreUnavailable):
            await ledger.execute_trade("AAPL", "BUY", 1)

        monkeypatch.undo()
        assert await store.get_all(TRADES) == []
        assert calls == []
