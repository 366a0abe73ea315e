# tests/unit/test_ingestion_service.py
"""
Unit tests for IngestionService.

Tests fetch -> normalize -> commit over fake fetchers and an in-memory store.
"""

from unittest.mock import AsyncMock

import pytest

from app.models import ProviderTag
from app.services.api_fetchers import FetchPage, FetchParams
from app.services.ingestion import IngestionService
from app.services.records import ArticleFilters


class TestCollect:
    @pytest.mark.asyncio
    async def test_collects_in_order(self, store, make_fetchers):
        call_log = []
        service = IngestionService(make_fetchers(call_log=call_log), store)
        param_sets = [
            (ProviderTag.NEWSDATA, FetchParams(category="top")),
            (ProviderTag.NEWSDATA, FetchParams(category="world")),
            (ProviderTag.NEWSAPI, FetchParams(country="us")),
        ]

        result = await service.collect(param_sets)

        assert [(p, params.category or params.country) for p, params in call_log] == [
            (ProviderTag.NEWSDATA, "top"),
            (ProviderTag.NEWSDATA, "world"),
            (ProviderTag.NEWSAPI, "us"),
        ]
        assert result.attempted == 3
        assert result.succeeded == 3
        assert len(result.records) == 3

    @pytest.mark.asyncio
    async def test_failed_set_skipped(self, store, make_fetchers):
        service = IngestionService(make_fetchers(newsdata={"fail_on": {0}}), store)

        result = await service.collect([
            (ProviderTag.NEWSDATA, FetchParams(category="top")),
            (ProviderTag.NEWSDATA, FetchParams(category="world")),
        ])

        assert result.attempted == 2
        assert result.succeeded == 1
        assert result.failures[0]["params"] == {"category": "top"}
        assert len(result.records) == 1

    @pytest.mark.asyncio
    async def test_rejected_articles_counted(self, store, make_fetchers):
        fetchers = make_fetchers()
        page = await fetchers[ProviderTag.NEWSDATA].fetch(FetchParams())
        broken = page.articles[0].model_copy(update={"title": None})
        fetchers[ProviderTag.NEWSDATA].fetch = AsyncMock(
            return_value=FetchPage(articles=[broken] + page.articles)
        )
        service = IngestionService(fetchers, store)

        result = await service.collect([(ProviderTag.NEWSDATA, FetchParams())])

        assert result.rejected == 1
        assert len(result.records) == 1

    @pytest.mark.asyncio
    async def test_missing_fetcher_is_a_provider_failure(self, store, make_fetchers):
        fetchers = make_fetchers()
        del fetchers[ProviderTag.NEWSAPI]
        service = IngestionService(fetchers, store)

        result = await service.collect([(ProviderTag.NEWSAPI, FetchParams(country="us"))])

        assert result.failures[0]["error"] == "no fetcher configured"


class TestCommit:
    @pytest.mark.asyncio
    async def test_commit_writes_to_store(self, store, make_record, make_fetchers):
        service = IngestionService(make_fetchers(), store)

        result = await service.commit([make_record("newsdata_a"), make_record("newsdata_b")])

        assert result.inserted == 2
        assert store.count_matching() == 2


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_both_providers(self, store, make_fetchers):
        fetchers = make_fetchers(newsdata={"per_call": 2}, newsapi={"per_call": 1})
        service = IngestionService(fetchers, store)

        summary = await service.refresh(ArticleFilters.build(category="sports", country="in", language="en"))

        assert summary["inserted"] == 3
        assert summary["updated"] == 0
        assert summary["errors"] == []
        assert summary["provider_errors"] == {}
        assert fetchers[ProviderTag.NEWSDATA].calls == [
            FetchParams(country="in", category="sports", language="en")
        ]
        assert fetchers[ProviderTag.NEWSAPI].calls == [
            FetchParams(country="in", category="sports", page_size=100)
        ]

    @pytest.mark.asyncio
    async def test_refresh_with_one_provider_failing(self, store, make_fetchers):
        fetchers = make_fetchers(newsdata={"fail_all": True}, newsapi={"per_call": 2})
        service = IngestionService(fetchers, store)

        summary = await service.refresh()

        assert summary["inserted"] == 2
        assert summary["provider_errors"] == {"newsdata": "HTTP 429"}
        assert store.count_matching() == 2

    @pytest.mark.asyncio
    async def test_refresh_reraises_unexpected_errors(self, store, make_fetchers):
        fetchers = make_fetchers()
        fetchers[ProviderTag.NEWSAPI].fetch = AsyncMock(side_effect=RuntimeError("bug"))
        service = IngestionService(fetchers, store)

        with pytest.raises(RuntimeError, match="bug"):
            await service.refresh()

        assert store.count_matching() == 0


class TestClose:
    @pytest.mark.asyncio
    async def test_close_closes_all_fetchers(self, store, make_fetchers):
        fetchers = make_fetchers()
        service = IngestionService(fetchers, store)

        await service.close()

        assert all(f.closed for f in fetchers.values())
