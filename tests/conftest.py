# tests/conftest.py
"""
Pytest configuration and fixtures.
"""

import os
from datetime import UTC, datetime, timedelta

import pytest

# Set test environment before app modules read settings
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOG_JSON", "false")

from app.database import build_engine, build_session_factory, init_db  # noqa: E402
from app.models import ProviderTag  # noqa: E402
from app.services.api_fetchers import (  # noqa: E402
    BaseFetcher,
    FetchPage,
    FetchParams,
    NewsApiOrgArticle,
    NewsDataArticle,
    UpstreamError,
)
from app.services.article_store import ArticleStore  # noqa: E402
from app.services.records import ArticleRecord, SourceRef  # noqa: E402

# Fixed "now" so freshness and window tests do not depend on the wall clock
NOW = datetime(2026, 10, 19, 12, 0, tzinfo=UTC)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def session_factory():
    """Fresh in-memory SQLite database per test."""
    engine = build_engine("sqlite:///:memory:")
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return ArticleStore(session_factory)


@pytest.fixture
def file_store(tmp_path):
    """
    Store on a file-backed SQLite database.

    Each thread gets its own pooled connection, unlike the in-memory
    fixture, so overlapping writers really contend for the database lock.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'cache.db'}")
    init_db(engine)
    yield ArticleStore(build_session_factory(engine))
    engine.dispose()


@pytest.fixture
def make_record():
    """Factory for canonical records with sensible defaults."""

    def _make(
        article_id: str = "newsdata_1",
        title: str = "Markets rally on rate cut hopes",
        url: str | None = None,
        published_at: datetime | None = None,
        provider: ProviderTag = ProviderTag.NEWSDATA,
        fetched_at: datetime | None = None,
        **overrides,
    ) -> ArticleRecord:
        record = ArticleRecord(
            article_id=article_id,
            title=title,
            url=url or f"https://example.com/{article_id}",
            published_at=published_at or NOW - timedelta(hours=1),
            source=overrides.pop("source", SourceRef(id="example", name="Example News")),
            provider=provider,
            fetched_at=fetched_at or NOW,
        )
        for key, value in overrides.items():
            setattr(record, key, value)
        return record

    return _make


class FakeFetcher(BaseFetcher):
    """
    In-process fetcher double.

    Returns `per_call` fresh raw articles per fetch, unless the call index is
    in `fail_on` (or `fail_all` is set), in which case it raises
    UpstreamError. Every call is appended to `calls` and, when given, to a
    shared `call_log` as (provider, params).
    """

    def __init__(self, provider, per_call=1, fail_on=(), fail_all=False, call_log=None):
        self._provider = provider
        self.per_call = per_call
        self.fail_on = set(fail_on)
        self.fail_all = fail_all
        self.call_log = call_log
        self.calls: list[FetchParams] = []
        self.closed = False

    @property
    def provider(self) -> ProviderTag:
        return self._provider

    async def fetch(self, params: FetchParams) -> FetchPage:
        index = len(self.calls)
        self.calls.append(params)
        if self.call_log is not None:
            self.call_log.append((self._provider, params))
        if self.fail_all or index in self.fail_on:
            raise UpstreamError(self._provider, "HTTP 429", status_code=429)
        return FetchPage(articles=[self._raw(index, n) for n in range(self.per_call)])

    def _raw(self, call: int, n: int):
        published = (NOW - timedelta(minutes=call * 10 + n)).isoformat()
        if self._provider is ProviderTag.NEWSDATA:
            return NewsDataArticle(
                article_id=f"nd-{call}-{n}",
                title=f"NewsData story {call}-{n}",
                link=f"https://newsdata.example/{call}/{n}",
                pubDate=published,
                source_id="nd_source",
                source_name="ND Source",
            )
        return NewsApiOrgArticle(
            title=f"NewsAPI story {call}-{n}",
            url=f"https://newsapi.example/{call}/{n}",
            publishedAt=published,
        )

    async def close(self) -> None:
        self.closed = True


class ExplodingFetcher(FakeFetcher):
    """Fails the test if anything calls it."""

    async def fetch(self, params: FetchParams) -> FetchPage:
        raise AssertionError(f"unexpected upstream call to {self.provider.value}: {params.describe()}")


@pytest.fixture
def make_fetchers():
    """Build a {provider: FakeFetcher} map; kwargs go to both unless keyed by provider."""

    def _make(newsdata: dict | None = None, newsapi: dict | None = None, call_log=None):
        return {
            ProviderTag.NEWSDATA: FakeFetcher(ProviderTag.NEWSDATA, call_log=call_log, **(newsdata or {})),
            ProviderTag.NEWSAPI: FakeFetcher(ProviderTag.NEWSAPI, call_log=call_log, **(newsapi or {})),
        }

    return _make


@pytest.fixture
def exploding_fetchers():
    return {
        ProviderTag.NEWSDATA: ExplodingFetcher(ProviderTag.NEWSDATA),
        ProviderTag.NEWSAPI: ExplodingFetcher(ProviderTag.NEWSAPI),
    }
