"""
Market Data Cache
==================

Maintains the in-memory quote snapshot for the watchlist, refreshes it
on a fixed interval, and tracks the feed's MarketStatus.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from core.observers import ObserverRegistry
from core.store import WATCHLIST, PersistentStore
from core.watchlist import WatchlistRegistry
from market_client.api import BaseQuoteProvider
from market_client.errors import ProviderUnavailable, StoreUnavailable, TickerNotFound
from market_client.models import MarketStatus, Quote, normalize_symbol
from utils.logging_utils import market_logger


logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = 15.0


class MarketDataCache:
    """
    Quote snapshot plus periodic refresh loop.

    The quote map has no lock: the timer refresh and explicit refreshes
    may overlap, and for any symbol the last completing write wins.
    """

    def __init__(
        self,
        provider: BaseQuoteProvider,
        watchlist: WatchlistRegistry,
        store: PersistentStore,
        refresh_interval: float = DEFAULT_REFRESH_INTERVAL,
    ):
        self.provider = provider
        self.watchlist = watchlist
        self.store = store
        self.refresh_interval = refresh_interval

        self._quotes: dict[str, Quote] = {}
        self._status = MarketStatus.LOADING
        self._last_refresh: Optional[int] = None
        self._observers = ObserverRegistry("market_data")

        self._refresh_task: Optional[asyncio.Task] = None
        self._running = False
        self._refresh_count = 0

    @property
    def status(self) -> MarketStatus:
        return self._status

    @property
    def last_refresh(self) -> Optional[int]:
        """Epoch ms at which the last refresh settled."""
        return self._last_refresh

    @property
    def is_running(self) -> bool:
        return self._running

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self._observers.subscribe(callback)

    # -- lifecycle --------------------------------------------------------------

    async def start(self) -> None:
        """Start the periodic refresh loop. The first refresh runs immediately."""
        if self._running:
            logger.warning("MarketDataCache already running")
            return

        self._running = True
        self._refresh_task = asyncio.create_task(
            self._refresh_loop(),
            name="market_data_refresh",
        )
        logger.info(f"MarketDataCache started (interval={self.refresh_interval}s)")

    async def stop(self) -> None:
        self._running = False

        if self._refresh_task:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

        logger.info("MarketDataCache stopped")

    async def _refresh_loop(self) -> None:
        while self._running:
            await self.refresh()
            await asyncio.sleep(self.refresh_interval)

    # -- refresh ----------------------------------------------------------------

    async def refresh(self) -> MarketStatus:
        """
        Fetch quotes for every watchlist symbol in one batch.

        Provider faults degrade the status and are never raised. Subscribers
        are notified once, after the status settles.
        """
        symbols = self.watchlist.get_symbols()
        started = time.monotonic()

        if not symbols:
            # Nothing to fetch is success, not degradation
            self._set_status(MarketStatus.LIVE)
        else:
            try:
                quotes = await self.provider.get_quotes(symbols)
            except Exception as e:
                logger.error(f"Failed to fetch quotes: {e}")
                self._set_status(MarketStatus.ERROR)
            else:
                if not quotes:
                    logger.warning("Market data unavailable (no quotes returned)")
                    self._set_status(MarketStatus.UNAVAILABLE)
                else:
                    self._set_status(MarketStatus.LIVE)
                    for quote in quotes:
                        self._quotes[quote.symbol] = quote
                        await self._persist_quote(quote)

        self._refresh_count += 1
        self._last_refresh = int(time.time() * 1000)
        market_logger.log_refresh(
            len(symbols),
            self._status.value,
            (time.monotonic() - started) * 1000,
        )
        self._observers.notify()
        return self._status

    def _set_status(self, status: MarketStatus) -> None:
        if status != self._status:
            market_logger.log_status_change(self._status.value, status.value)
        self._status = status

    async def _persist_quote(self, quote: Quote) -> None:
        """Keep the offline copy fresh. Failures only cost the offline copy."""
        try:
            await self.store.put(WATCHLIST, quote.symbol, quote.to_dict())
        except StoreUnavailable as e:
            logger.debug(f"Could not persist quote for {quote.symbol}: {e}")

    # -- watchlist --------------------------------------------------------------

    async def add_to_watchlist(self, symbol: str) -> Quote:
        """
        Validate a symbol against the provider and start tracking it.

        Raises:
            TickerNotFound: The provider has no quote for the symbol
            ProviderUnavailable: The provider could not be reached
        """
        clean = normalize_symbol(symbol)
        try:
            quotes = await self.provider.get_quotes([clean])
        except ProviderUnavailable:
            raise
        except Exception as e:
            raise ProviderUnavailable(f"Quote lookup for {clean} failed: {e}") from e

        if not quotes:
            raise TickerNotFound(clean)

        quote = quotes[0]
        self._quotes[quote.symbol] = quote
        await self.store.put(WATCHLIST, quote.symbol, quote.to_dict())
        await self.watchlist.add_symbol(quote.symbol)
        self._observers.notify()
        return quote

    async def remove_from_watchlist(self, symbol: str) -> None:
        """Stop tracking a symbol and drop its cached quote."""
        clean = normalize_symbol(symbol)
        await self.watchlist.remove_symbol(clean)
        self._quotes.pop(clean, None)
        await self.store.delete(WATCHLIST, clean)
        self._observers.notify()

    async def get_watchlist(self) -> list[Quote]:
        """
        Quotes for the watchlist symbols.

        Uses the live quote where one exists, else the persisted offline
        copy. Symbols with neither are left out.
        """
        result = []
        for symbol in self.watchlist.get_symbols():
            quote = self._quotes.get(symbol)
            if quote is None:
                try:
                    stored = await self.store.get(WATCHLIST, symbol)
                except StoreUnavailable as e:
                    logger.debug(f"Offline quote for {symbol} unavailable: {e}")
                    stored = None
                if stored:
                    quote = Quote.from_dict(stored)
            if quote is not None:
                result.append(quote)
        return result

    # -- reads ------------------------------------------------------------------

    def get_quote(self, symbol: str) -> Optional[Quote]:
        return self._quotes.get(normalize_symbol(symbol))

    def get_quotes(self) -> dict[str, Quote]:
        return dict(self._quotes)

    def get_stats(self) -> dict:
        return {
            "status": self._status.value,
            "last_refresh": self._last_refresh,
            "refresh_count": self._refresh_count,
            "quotes_cached": len(self._quotes),
            "symbols_tracked": len(self.watchlist),
        }
