"""
Yahoo Finance Adapter
======================

Quotes, news and ticker search from the public Yahoo Finance endpoints.
"""

import logging
from typing import Any, Optional

import httpx

from market_client.api import BaseNewsProvider, BaseQuoteProvider, HttpProvider
from market_client.models import NewsItem, Quote


logger = logging.getLogger(__name__)

SEARCHABLE_QUOTE_TYPES = ("EQUITY", "ETF", "INDEX")


class YahooFinanceClient(HttpProvider, BaseQuoteProvider, BaseNewsProvider):
    """Primary quote source and primary news provider."""

    name = "yahoo"

    def __init__(
        self,
        base_url: str = "https://query1.finance.yahoo.com",
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(base_url, timeout=timeout, http_client=http_client)

    async def get_quotes(self, symbols: list[str]) -> list[Quote]:
        if not symbols:
            return []

        data = await self._get_json("/v7/finance/quote", {"symbols": ",".join(symbols)})
        results = ((data or {}).get("quoteResponse") or {}).get("result") or []

        quotes = []
        for raw in results:
            quote = self._parse_quote(raw)
            if quote:
                quotes.append(quote)

        logger.debug(f"Yahoo returned {len(quotes)}/{len(symbols)} quotes")
        return quotes

    async def fetch_news(self, tickers: list[str], limit: int) -> list[NewsItem]:
        params: dict[str, str] = {}
        if tickers:
            params["symbols"] = ",".join(tickers)
        else:
            params["count"] = str(limit)

        data = await self._get_json("/v2/finance/news", params)
        items = []
        for raw in (data or {}).get("news") or []:
            item = self._parse_news(raw)
            if item:
                items.append(item)
        return items

    async def search(self, query: str, limit: int = 6) -> list[dict[str, Any]]:
        """Search for tickers (equities, ETFs and indices)."""
        data = await self._get_json("/v1/finance/search", {
            "q": query,
            "quotesCount": str(limit),
            "newsCount": "0",
        })
        return [
            {
                "symbol": q.get("symbol"),
                "short_name": q.get("shortname"),
                "long_name": q.get("longname"),
                "type": q.get("quoteType"),
                "exchange": q.get("exchange"),
            }
            for q in (data or {}).get("quotes") or []
            if q.get("quoteType") in SEARCHABLE_QUOTE_TYPES
        ]

    def _parse_quote(self, raw: dict) -> Optional[Quote]:
        symbol = raw.get("symbol")
        price = raw.get("regularMarketPrice")
        if not symbol or price is None:
            return None
        return Quote(
            symbol=symbol,
            display_name=raw.get("shortName") or raw.get("longName") or symbol,
            price=price,
            change_percent=raw.get("regularMarketChangePercent") or 0.0,
            sector=raw.get("sector"),
            currency=raw.get("currency"),
        )

    def _parse_news(self, raw: dict) -> Optional[NewsItem]:
        url = raw.get("link")
        if not url or not raw.get("title"):
            return None

        resolutions = (raw.get("thumbnail") or {}).get("resolutions") or []
        return NewsItem(
            id=url,
            title=raw["title"],
            summary=raw.get("summary") or raw.get("type") or "",
            url=url,
            source=raw.get("publisher") or "Yahoo Finance",
            published_at=int(raw.get("providerPublishTime") or 0) * 1000,
            image_url=resolutions[0].get("url") if resolutions else None,
            tickers=tuple(raw.get("relatedTickers") or ()),
        )
