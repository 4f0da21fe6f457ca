"""
Ledger Module
==============

Append-only paper trade log and the replay that derives portfolio state
from it. Portfolio state is never stored: every read folds the full log.
"""

import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Iterable, Optional

from core.market_data import MarketDataCache
from core.observers import ObserverRegistry
from core.store import TRADES, PersistentStore
from market_client.errors import InsufficientFunds, InsufficientHoldings, ProviderUnavailable
from market_client.models import TradeRecord, TradeSide, normalize_symbol
from utils.logging_utils import trade_logger


logger = logging.getLogger(__name__)

SEED_CASH = 10000.0


@dataclass
class Holding:
    """Open position in one symbol."""
    qty: float = 0.0
    avg_price: float = 0.0

    @property
    def cost_basis(self) -> float:
        return self.qty * self.avg_price

    def market_value(self, price: float) -> float:
        return self.qty * price

    def unrealized_pnl(self, price: float) -> float:
        """PnL at the given price."""
        return self.qty * (price - self.avg_price)


@dataclass
class PortfolioState:
    """Cash and holdings derived from the trade log."""
    cash: float
    holdings: dict[str, Holding] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "cash": self.cash,
            "holdings": {
                symbol: {"qty": h.qty, "avg_price": h.avg_price}
                for symbol, h in self.holdings.items()
            },
        }


def _dec(value: float) -> Decimal:
    # Via str so 156.01 stays 156.01 rather than its binary expansion
    return Decimal(str(value))


def replay_trades(trades: Iterable[TradeRecord], seed_cash: float = SEED_CASH) -> PortfolioState:
    """
    Fold a trade log into portfolio state.

    Trades are applied in ascending timestamp order; sorting is stable so
    equal timestamps keep their log order. A full close discards the
    holding and its average price.

    The fold runs in Decimal so a buy and sell of the same quantity at the
    same price restore cash exactly; values become floats only in the
    returned PortfolioState.
    """
    cash = _dec(seed_cash)
    # symbol -> [qty, avg_price]
    positions: dict[str, list[Decimal]] = {}

    for trade in sorted(trades, key=lambda t: t.timestamp):
        qty = _dec(trade.qty)
        cost = qty * _dec(trade.price)

        if trade.side == TradeSide.BUY:
            cash -= cost
            held_qty, avg_price = positions.get(trade.symbol, (Decimal(0), Decimal(0)))
            new_qty = held_qty + qty
            positions[trade.symbol] = [new_qty, (held_qty * avg_price + cost) / new_qty]
        else:
            cash += cost
            position = positions.get(trade.symbol)
            if position is None:
                logger.warning(f"Sell of {trade.symbol} without a holding in trade {trade.id}")
                continue
            position[0] -= qty
            if position[0] <= 0:
                del positions[trade.symbol]

    return PortfolioState(
        cash=float(cash),
        holdings={
            symbol: Holding(qty=float(qty), avg_price=float(avg_price))
            for symbol, (qty, avg_price) in positions.items()
        },
    )


class LedgerEngine:
    """
    Paper trading ledger.

    Validation and append are not isolated from each other: two concurrent
    trades can both validate against the same portfolio snapshot.
    """

    def __init__(
        self,
        store: PersistentStore,
        market_data: MarketDataCache,
        seed_cash: float = SEED_CASH,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.store = store
        self.market_data = market_data
        self.seed_cash = seed_cash
        self._clock = clock or time.time
        self._observers = ObserverRegistry("ledger")

        logger.info(f"LedgerEngine initialized with seed cash: {seed_cash}")

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self._observers.subscribe(callback)

    async def get_trades(self) -> list[TradeRecord]:
        """The trade log in replay order."""
        raw = await self.store.get_all(TRADES)
        trades = [TradeRecord.from_dict(item) for item in raw]
        return sorted(trades, key=lambda t: t.timestamp)

    async def get_portfolio(self) -> PortfolioState:
        """Recompute portfolio state from the full log."""
        raw = await self.store.get_all(TRADES)
        return replay_trades((TradeRecord.from_dict(item) for item in raw), self.seed_cash)

    async def execute_trade(
        self,
        symbol: str,
        side: "TradeSide | str",
        qty: float,
        note: Optional[str] = None,
    ) -> str:
        """
        Validate and record a paper trade at the current quote.

        Returns:
            Confirmation message

        Raises:
            ValueError: Non-positive or non-finite quantity, or unknown side
            ProviderUnavailable: No usable quote for the symbol
            InsufficientFunds: Buy costs more than available cash
            InsufficientHoldings: Sell exceeds the held quantity
        """
        side = TradeSide.parse(side)
        symbol = normalize_symbol(symbol)
        if not math.isfinite(qty) or qty <= 0:
            raise ValueError(f"Quantity must be a positive number, got {qty}")

        quote = self.market_data.get_quote(symbol)
        if quote is None or not math.isfinite(quote.price) or quote.price <= 0:
            raise ProviderUnavailable(
                f"Market data unavailable for {symbol}. Cannot execute trade."
            )

        price = quote.price
        portfolio = await self.get_portfolio()

        if side == TradeSide.BUY:
            cost = _dec(qty) * _dec(price)
            if _dec(portfolio.cash) < cost:
                raise InsufficientFunds(required=float(cost), available=portfolio.cash)
        else:
            holding = portfolio.holdings.get(symbol)
            if holding is None or holding.qty < qty:
                raise InsufficientHoldings(symbol, qty, holding.qty if holding else 0.0)

        timestamp = int(self._clock() * 1000)
        trade = TradeRecord(
            id=f"trade-{timestamp}-{uuid.uuid4().hex[:8]}",
            symbol=symbol,
            side=side,
            qty=qty,
            price=price,
            timestamp=timestamp,
            note=note,
        )
        await self.store.put(TRADES, trade.id, trade.to_dict())

        trade_logger.log_trade_executed(trade)
        self._observers.notify()
        return f"{side.value} {qty:g} {symbol} @ ${price:.2f} completed"

    async def reset_account(self) -> int:
        """Delete the whole trade log. Returns the number of trades removed."""
        removed = await self.store.clear(TRADES)
        trade_logger.log_account_reset(removed)
        self._observers.notify()
        return removed

    async def get_summary(self) -> dict:
        """Portfolio valued at the current quotes."""
        trades = await self.get_trades()
        portfolio = replay_trades(trades, self.seed_cash)

        positions = {}
        holdings_value = 0.0
        unrealized = 0.0
        for symbol, holding in portfolio.holdings.items():
            quote = self.market_data.get_quote(symbol)
            price = quote.price if quote and quote.price > 0 else holding.avg_price
            value = holding.market_value(price)
            pnl = holding.unrealized_pnl(price)
            holdings_value += value
            unrealized += pnl
            positions[symbol] = {
                "qty": holding.qty,
                "avg_price": holding.avg_price,
                "price": price,
                "market_value": value,
                "unrealized_pnl": pnl,
            }

        equity = portfolio.cash + holdings_value
        return {
            "seed_cash": self.seed_cash,
            "cash": portfolio.cash,
            "holdings": positions,
            "holdings_value": holdings_value,
            "unrealized_pnl": unrealized,
            "equity": equity,
            "total_return": equity - self.seed_cash,
            "total_trades": len(trades),
        }
