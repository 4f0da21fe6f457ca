"""
Alpha Vantage News Adapter
===========================

NEWS_SENTIMENT feed. The free quota is small, so the provider is only
used when a key is configured and asks for few items.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import httpx

from market_client.api import BaseNewsProvider, HttpProvider
from market_client.models import NewsItem


logger = logging.getLogger(__name__)

TIME_PUBLISHED_FORMAT = "%Y%m%dT%H%M%S"


def parse_time_published(value: str) -> int:
    """Parse Alpha Vantage's "20230402T143500" timestamps (UTC) to epoch ms."""
    parsed = datetime.strptime(value[:15], TIME_PUBLISHED_FORMAT).replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


class AlphaVantageNewsClient(HttpProvider, BaseNewsProvider):
    """Tertiary news provider. Skipped entirely without an API key."""

    name = "alphavantage"

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://www.alphavantage.co",
        max_items: int = 5,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(base_url, timeout=timeout, http_client=http_client)
        self.api_key = api_key
        self.max_items = max_items

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def fetch_news(self, tickers: list[str], limit: int) -> list[NewsItem]:
        if not self.enabled:
            return []

        params = {
            "function": "NEWS_SENTIMENT",
            "limit": str(min(limit, self.max_items)),
            "apikey": self.api_key,
        }
        if tickers:
            params["tickers"] = ",".join(tickers)
        else:
            params["topics"] = "finance"

        data = await self._get_json("/query", params) or {}

        if data.get("Note") or data.get("Information"):
            logger.warning("AlphaVantage limit reached")
            return []

        items = []
        for raw in data.get("feed") or []:
            item = self._parse_news(raw)
            if item:
                items.append(item)
        return items

    def _parse_news(self, raw: dict) -> Optional[NewsItem]:
        url = raw.get("url")
        if not url or not raw.get("title"):
            return None
        try:
            published_at = parse_time_published(raw.get("time_published", ""))
        except ValueError:
            logger.debug(f"Unparseable time_published for {url}")
            return None

        return NewsItem(
            id=url,
            title=raw["title"],
            summary=raw.get("summary"),
            url=url,
            image_url=raw.get("banner_image") or None,
            source=raw.get("source") or "Alpha Vantage",
            published_at=published_at,
            tickers=tuple(t["ticker"] for t in raw.get("ticker_sentiment") or [] if t.get("ticker")),
        )
