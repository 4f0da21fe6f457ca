"""
Tests for News Aggregation and Analysis
"""

import pytest

from core.news import NewsAggregator, NewsAnalyzer, merge_news, news_cache_key, parse_analysis
from market_client.errors import ProviderUnavailable


class TestMerge:
    """Tests for URL dedupe and ordering."""

    def test_first_provider_wins_duplicates(self, news_factory):
        a = [news_factory("u1", 100, source="A"), news_factory("u2", 200, source="A")]
        b = [news_factory("u2", 200, source="B"), news_factory("u3", 300, source="B")]

        merged = merge_news([a, b])

        assert [n.url for n in merged] == ["u3", "u2", "u1"]
        assert next(n for n in merged if n.url == "u2").source == "A"

    def test_sorted_newest_first(self, news_factory):
        batch = [news_factory("old", 1), news_factory("new", 3), news_factory("mid", 2)]

        assert [n.url for n in merge_news([batch])] == ["new", "mid", "old"]

    def test_empty(self):
        assert merge_news([]) == []


class TestCacheKey:
    """Tests for the request-derived cache key."""

    def test_order_and_case_insensitive(self):
        assert news_cache_key(["aapl", "NVDA"], 20) == news_cache_key(["NVDA", "AAPL"], 20)

    def test_limit_changes_key(self):
        assert news_cache_key(["AAPL"], 20) != news_cache_key(["AAPL"], 10)

    def test_prefix(self):
        assert news_cache_key([], 20).startswith("news:")


class TestAggregator:
    """Tests for NewsAggregator."""

    @pytest.mark.asyncio
    async def test_failing_provider_is_isolated(self, store, news_provider, news_factory):
        good = news_provider("good", [news_factory("u1", 100)])
        bad = news_provider("bad", error=ProviderUnavailable("HTTP 500"))
        aggregator = NewsAggregator([bad, good], store)

        items = await aggregator.get_news(["AAPL"])

        assert [n.url for n in items] == ["u1"]

    @pytest.mark.asyncio
    async def test_disabled_provider_skipped(self, store, news_provider, news_factory):
        disabled = news_provider("finnhub", [news_factory("u9", 900)], enabled=False)
        enabled = news_provider("yahoo", [news_factory("u1", 100)])
        aggregator = NewsAggregator([disabled, enabled], store)

        items = await aggregator.get_news()

        assert disabled.calls == 0
        assert [n.url for n in items] == ["u1"]

    @pytest.mark.asyncio
    async def test_priority_order_across_providers(self, store, news_provider, news_factory):
        first = news_provider("yahoo", [news_factory("u1", 100, source="yahoo")])
        second = news_provider("finnhub", [news_factory("u1", 100, source="finnhub")])
        aggregator = NewsAggregator([first, second], store)

        items = await aggregator.get_news()

        assert len(items) == 1
        assert items[0].source == "yahoo"

    @pytest.mark.asyncio
    async def test_cache_hit_skips_providers(self, store, news_provider, news_factory):
        provider = news_provider("yahoo", [news_factory("u1", 100)])
        aggregator = NewsAggregator([provider], store)

        await aggregator.get_news(["AAPL"])
        items = await aggregator.get_news(["aapl"])

        assert provider.calls == 1
        assert [n.url for n in items] == ["u1"]

    @pytest.mark.asyncio
    async def test_cache_expires(self, store, news_provider, clock, news_factory):
        provider = news_provider("yahoo", [news_factory("u1", 100)])
        aggregator = NewsAggregator([provider], store, cache_ttl_minutes=3)

        await aggregator.get_news()
        clock.advance(181)
        await aggregator.get_news()

        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_cache(self, store, news_provider, news_factory):
        provider = news_provider("yahoo", [news_factory("u1", 100)])
        aggregator = NewsAggregator([provider], store)

        await aggregator.get_news()
        provider.items = [news_factory("u2", 200)]
        items = await aggregator.get_news(force_refresh=True)

        assert provider.calls == 2
        assert [n.url for n in items] == ["u2"]

        # The forced result replaced the cached one
        assert [n.url for n in await aggregator.get_news()] == ["u2"]

    @pytest.mark.asyncio
    async def test_empty_result_not_cached(self, store, news_provider):
        provider = news_provider("yahoo", [])
        aggregator = NewsAggregator([provider], store)

        assert await aggregator.get_news() == []
        assert await store.get_cache(news_cache_key([], 20)) is None

        await aggregator.get_news()
        assert provider.calls == 2

    @pytest.mark.asyncio
    async def test_all_providers_failing_returns_empty(self, store, news_provider):
        aggregator = NewsAggregator(
            [news_provider("a", error=RuntimeError("x")), news_provider("b", error=RuntimeError("y"))],
            store,
        )

        assert await aggregator.get_news() == []


class TestAnalyzer:
    """Tests for NewsAnalyzer."""

    @pytest.mark.asyncio
    async def test_analysis_with_code_fences(self, news_factory):
        seen = {}

        async def generate(prompt, system_instruction, temperature):
            seen["prompt"] = prompt
            seen["temperature"] = temperature
            return '```json\n{"plainSummary": "Apple sold more phones.", "watchNext": "Watch $200"}\n```'

        item = news_factory("u1", 100, title="Apple beats estimates").with_tickers(["AAPL"])
        analyzed = await NewsAnalyzer(generate).analyze(item)

        assert analyzed.ai_summary == "Apple sold more phones."
        assert analyzed.ai_watch_next == "Watch $200"
        assert analyzed.url == "u1"
        assert item.ai_summary is None
        assert "Apple beats estimates" in seen["prompt"]
        assert "AAPL" in seen["prompt"]
        assert seen["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_generator_failure_returns_item_unchanged(self, news_factory):
        async def generate(prompt, system_instruction, temperature):
            raise RuntimeError("quota exceeded")

        item = news_factory("u1", 100)

        assert await NewsAnalyzer(generate).analyze(item) is item

    @pytest.mark.asyncio
    async def test_malformed_answer_returns_item_unchanged(self, news_factory):
        async def generate(prompt, system_instruction, temperature):
            return "I think the stock will go up."

        item = news_factory("u1", 100)

        assert await NewsAnalyzer(generate).analyze(item) is item

    @pytest.mark.asyncio
    async def test_analyze_all_keeps_order_and_failures(self, news_factory):
        async def generate(prompt, system_instruction, temperature):
            if "Broken" in prompt:
                raise RuntimeError("quota exceeded")
            return '{"plainSummary": "ok", "watchNext": "next"}'

        items = [
            news_factory("u1", 300, title="First"),
            news_factory("u2", 200, title="Broken"),
            news_factory("u3", 100, title="Third"),
        ]

        analyzed = await NewsAnalyzer(generate).analyze_all(items)

        assert [item.url for item in analyzed] == ["u1", "u2", "u3"]
        assert [item.ai_summary for item in analyzed] == ["ok", None, "ok"]

    def test_parse_rejects_non_object(self):
        with pytest.raises(ValueError):
            parse_analysis("[1, 2]")

    def test_general_market_prompt(self, news_factory):
        async def generate(prompt, system_instruction, temperature):
            return "{}"

        prompt = NewsAnalyzer(generate).build_prompt(news_factory("u1", 100))

        assert "General Market" in prompt
