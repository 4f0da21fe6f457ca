"""
News Aggregation Module
========================

Fans out to independent news providers, dedupes by URL in provider
priority order, and caches non-empty results for a short TTL.
"""

import asyncio
import hashlib
import json
import logging
import re
from typing import Awaitable, Callable, Optional

from core.store import PersistentStore
from market_client.api import BaseNewsProvider
from market_client.errors import StoreUnavailable
from market_client.models import NewsItem, normalize_symbol


logger = logging.getLogger(__name__)

NEWS_CACHE_TTL_MINUTES = 3
DEFAULT_NEWS_LIMIT = 20

# (prompt, system_instruction, temperature) -> generated text
TextGenerator = Callable[[str, str, float], Awaitable[str]]


def news_cache_key(tickers: list[str], limit: int) -> str:
    """Cache key derived from the request content."""
    request = {"tickers": sorted({normalize_symbol(t) for t in tickers}), "limit": limit}
    digest = hashlib.sha256(json.dumps(request, sort_keys=True).encode("utf-8")).hexdigest()
    return f"news:{digest[:32]}"


def merge_news(batches: list[list[NewsItem]]) -> list[NewsItem]:
    """
    Dedupe by URL and sort newest first.

    Batches are in provider priority order; the first occurrence of a URL
    wins.
    """
    unique: dict[str, NewsItem] = {}
    for batch in batches:
        for item in batch:
            if item.url not in unique:
                unique[item.url] = item
    return sorted(unique.values(), key=lambda n: n.published_at, reverse=True)


class NewsAggregator:
    """Multi-provider news feed with a TTL cache."""

    def __init__(
        self,
        providers: list[BaseNewsProvider],
        store: PersistentStore,
        cache_ttl_minutes: float = NEWS_CACHE_TTL_MINUTES,
    ):
        self.providers = providers
        self.store = store
        self.cache_ttl_minutes = cache_ttl_minutes

    async def get_news(
        self,
        tickers: Optional[list[str]] = None,
        limit: int = DEFAULT_NEWS_LIMIT,
        force_refresh: bool = False,
    ) -> list[NewsItem]:
        tickers = [normalize_symbol(t) for t in tickers or [] if t.strip()]
        cache_key = news_cache_key(tickers, limit)

        if not force_refresh:
            cached = await self.store.get_cache(cache_key)
            if cached:
                logger.info(f"Served {len(cached)} news items from cache")
                return [NewsItem.from_dict(item) for item in cached]

        active = [p for p in self.providers if p.enabled]
        logger.info(f"Fetching fresh news from {[p.name for p in active]}")

        results = await asyncio.gather(
            *(provider.fetch_news(tickers, limit) for provider in active),
            return_exceptions=True,
        )

        batches = []
        for provider, result in zip(active, results):
            if isinstance(result, BaseException):
                logger.error(f"{provider.name} news failed: {result}")
                continue
            logger.debug(f"{provider.name} returned {len(result)} news items")
            batches.append(result)

        merged = merge_news(batches)

        if merged:
            try:
                await self.store.set_cache(
                    cache_key,
                    [item.to_dict() for item in merged],
                    self.cache_ttl_minutes,
                )
                logger.info(f"Cached {len(merged)} unique news items")
            except StoreUnavailable as e:
                logger.warning(f"Could not cache news: {e}")
        else:
            logger.warning("No news found from any provider")

        return merged


class NewsAnalyzer:
    """
    Adds a plain-language summary and a watch-next hint to news items.

    The text generator is injected; the desk only builds an analyzer when
    one is supplied, and items pass through untouched otherwise.
    """

    SYSTEM_INSTRUCTION = "You are a senior financial analyst for retail investors."
    TEMPERATURE = 0.3

    def __init__(self, generate: TextGenerator):
        self.generate = generate

    def build_prompt(self, item: NewsItem) -> str:
        tickers = ", ".join(item.tickers) or "General Market"
        return (
            "Analyze this financial news article:\n"
            f'Title: "{item.title}"\n'
            f'Summary: "{item.summary or ""}"\n'
            f"Related Tickers: {tickers}\n\n"
            "Output a JSON object with exactly two fields:\n"
            '1. "plainSummary": A 1-sentence plain English explanation of what '
            "happened, removing jargon.\n"
            '2. "watchNext": A short suggestion on what specific metric or event '
            'to watch next (e.g., "Watch if stock breaks $150").'
        )

    async def analyze(self, item: NewsItem) -> NewsItem:
        """Return a copy of the item with AI fields set, or the item unchanged on failure."""
        logger.info(f"Analyzing: {item.title[:40]}")
        try:
            text = await self.generate(self.build_prompt(item), self.SYSTEM_INSTRUCTION, self.TEMPERATURE)
            analysis = parse_analysis(text)
        except Exception as e:
            logger.error(f"Analysis failed for {item.url}: {e}")
            return item

        return item.with_analysis(analysis.get("plainSummary"), analysis.get("watchNext"))

    async def analyze_all(self, items: list[NewsItem]) -> list[NewsItem]:
        """Analyze items concurrently, keeping their order."""
        return list(await asyncio.gather(*(self.analyze(item) for item in items)))


_CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


def parse_analysis(text: str) -> dict:
    """Parse the generator's JSON answer, tolerating markdown code fences."""
    data = json.loads(_CODE_FENCE.sub("", text).strip())
    if not isinstance(data, dict):
        raise ValueError("analysis is not a JSON object")
    return data
