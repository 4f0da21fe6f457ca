"""
Shared fixtures: in-process provider fakes, a controllable clock and a
temporary SQLite store per test.
"""

from typing import Optional

import pytest

from core.ledger import LedgerEngine
from core.market_data import MarketDataCache
from core.store import PersistentStore
from core.watchlist import WatchlistRegistry
from market_client.api import BaseNewsProvider, BaseQuoteProvider
from market_client.models import NewsItem, Quote


class FakeClock:
    """Manually advanced wall clock (seconds)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeQuoteProvider(BaseQuoteProvider):
    """Quote provider answering from a dict."""

    def __init__(self):
        self.quotes: dict[str, Quote] = {}
        self.error: Optional[Exception] = None
        self.calls: list[list[str]] = []

    def set_price(self, symbol: str, price: float, **kwargs) -> Quote:
        quote = Quote(symbol=symbol, display_name=kwargs.pop("display_name", symbol), price=price, **kwargs)
        self.quotes[quote.symbol] = quote
        return quote

    async def get_quotes(self, symbols: list[str]) -> list[Quote]:
        self.calls.append(list(symbols))
        if self.error:
            raise self.error
        return [self.quotes[s] for s in symbols if s in self.quotes]


class FakeNewsProvider(BaseNewsProvider):
    """News provider returning canned items."""

    def __init__(self, name: str, items=None, error: Optional[Exception] = None, enabled: bool = True):
        self.name = name
        self.items: list[NewsItem] = items or []
        self.error = error
        self._enabled = enabled
        self.calls = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def fetch_news(self, tickers: list[str], limit: int) -> list[NewsItem]:
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.items)


def make_news(url: str, published_at: int, title: Optional[str] = None, source: str = "test") -> NewsItem:
    return NewsItem(
        id=url,
        title=title or f"Story at {url}",
        url=url,
        published_at=published_at,
        source=source,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock) -> PersistentStore:
    store = PersistentStore(str(tmp_path / "desk.db"), clock=clock)
    yield store
    store.close()


@pytest.fixture
def quote_provider() -> FakeQuoteProvider:
    return FakeQuoteProvider()


@pytest.fixture
def watchlist(store) -> WatchlistRegistry:
    """Registry seeded empty so each test chooses its symbols."""
    return WatchlistRegistry(store, default_symbols=[])


@pytest.fixture
def market_data(quote_provider, watchlist, store) -> MarketDataCache:
    return MarketDataCache(quote_provider, watchlist, store, refresh_interval=0.01)


@pytest.fixture
def ledger(store, market_data, clock) -> LedgerEngine:
    return LedgerEngine(store, market_data, seed_cash=10000.0, clock=clock)


@pytest.fixture
def set_price(quote_provider, watchlist, market_data):
    """Make a symbol tradable at a price: track it and refresh quotes."""
    async def _set_price(symbol: str, price: float) -> None:
        quote_provider.set_price(symbol, price)
        await watchlist.add_symbol(symbol)
        await market_data.refresh()
    return _set_price


@pytest.fixture
def news_factory():
    return make_news


@pytest.fixture
def news_provider():
    """Factory for FakeNewsProvider instances."""
    return FakeNewsProvider
