"""
Finnhub News Adapter
=====================

General market news, or company news per ticker when tickers are given.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from market_client.api import BaseNewsProvider, HttpProvider
from market_client.errors import ProviderUnavailable
from market_client.models import NewsItem


logger = logging.getLogger(__name__)

COMPANY_NEWS_LOOKBACK_DAYS = 3
MAX_CONCURRENT_TICKERS = 3


class FinnhubNewsClient(HttpProvider, BaseNewsProvider):
    """Secondary news provider. Disabled when no API key is configured."""

    name = "finnhub"

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://finnhub.io/api/v1",
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(base_url, timeout=timeout, http_client=http_client)
        self.api_key = api_key

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def fetch_news(self, tickers: list[str], limit: int) -> list[NewsItem]:
        if not self.enabled:
            logger.debug("Finnhub key missing, skipping")
            return []

        if tickers:
            return await self.fetch_company_news(tickers)

        data = await self._get_finnhub("/news", {"category": "general"})
        if not isinstance(data, list):
            return []
        return [item for item in (self._parse_news(raw) for raw in data[:limit]) if item]

    async def fetch_company_news(self, tickers: list[str]) -> list[NewsItem]:
        """
        Fetch recent company news for each ticker.

        At most MAX_CONCURRENT_TICKERS requests are in flight. A ticker that
        fails is logged and contributes nothing. The same article reported
        for several tickers is returned once with the tickers merged.
        """
        unique_tickers = list(dict.fromkeys(tickers))
        semaphore = asyncio.Semaphore(MAX_CONCURRENT_TICKERS)

        async def fetch_one(symbol: str) -> list[NewsItem]:
            async with semaphore:
                try:
                    return await self._fetch_ticker_news(symbol)
                except ProviderUnavailable as e:
                    logger.warning(f"Finnhub news for {symbol} failed: {e}")
                    return []

        results = await asyncio.gather(*(fetch_one(sym) for sym in unique_tickers))

        merged: dict[str, NewsItem] = {}
        for items in results:
            for item in items:
                existing = merged.get(item.id)
                if existing is None:
                    merged[item.id] = item
                else:
                    tickers_union = list(dict.fromkeys(existing.tickers + item.tickers))
                    merged[item.id] = existing.with_tickers(tickers_union)

        return sorted(merged.values(), key=lambda n: n.published_at, reverse=True)

    async def _fetch_ticker_news(self, symbol: str) -> list[NewsItem]:
        today = datetime.now(timezone.utc).date()
        start = today - timedelta(days=COMPANY_NEWS_LOOKBACK_DAYS)
        data = await self._get_finnhub("/company-news", {
            "symbol": symbol,
            "from": start.isoformat(),
            "to": today.isoformat(),
        })
        if not isinstance(data, list):
            return []
        return [item for item in (self._parse_news(raw, [symbol]) for raw in data) if item]

    async def _get_finnhub(self, endpoint: str, params: dict):
        params = {**params, "token": self.api_key}
        response = await self._request(endpoint, params=params)
        if response.status_code == 429:
            logger.warning("Finnhub rate limited")
            return []
        if response.is_error:
            raise ProviderUnavailable(f"Finnhub HTTP {response.status_code} on {endpoint}")
        try:
            return response.json()
        except ValueError as e:
            raise ProviderUnavailable(f"Finnhub returned invalid JSON on {endpoint}") from e

    def _parse_news(self, raw: dict, tickers: Optional[list[str]] = None) -> Optional[NewsItem]:
        url = raw.get("url")
        if not url or not raw.get("headline"):
            return None

        if tickers is None:
            related = raw.get("related") or ""
            tickers = [s.strip() for s in related.split(",") if s.strip()]

        return NewsItem(
            id=url,
            title=raw["headline"],
            summary=raw.get("summary"),
            url=url,
            image_url=raw.get("image") or None,
            source=raw.get("source") or "Finnhub",
            published_at=int(raw.get("datetime") or 0) * 1000,
            tickers=tuple(tickers),
        )
