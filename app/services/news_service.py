# app/services/news_service.py
"""
Read service: answers client queries from the article store only.

Nothing here holds a fetcher or an ingestion service, so a read can never
spend upstream credits. An empty store yields empty pages;
StoreUnavailableError propagates to the HTTP layer.
"""

import logging
from datetime import datetime, timedelta

from app.constants import Pagination
from app.models import utcnow
from app.services.article_store import ArticleStore
from app.services.records import ArticleFilters, ArticlePage, ArticleRecord, PageOptions, SourceStat

logger = logging.getLogger(__name__)


class NewsService:
    """Unified news reads over the cached articles."""

    def __init__(self, store: ArticleStore, cache_expiry_minutes: int = 30):
        self.store = store
        self.cache_expiry = timedelta(minutes=cache_expiry_minutes)

    def get_latest(self, filters: ArticleFilters | None = None, page: PageOptions | None = None) -> ArticlePage:
        logger.debug(f"Latest news from store: {(filters or ArticleFilters()).describe()}")
        return self.store.find_recent(filters=filters, page=page)

    def search(
        self,
        query: str,
        filters: ArticleFilters | None = None,
        page: PageOptions | None = None,
    ) -> ArticlePage:
        return self.store.search_full_text(query, page=page, filters=filters)

    def get_trending(self, limit: int = Pagination.DEFAULT_TRENDING_LIMIT) -> list[ArticleRecord]:
        return self.store.find_trending(limit)

    def get_by_category(
        self,
        category: str,
        filters: ArticleFilters | None = None,
        page: PageOptions | None = None,
    ) -> ArticlePage:
        return self.store.find_by_category([category], page=page, filters=filters)

    def get_by_country(
        self,
        country: str,
        filters: ArticleFilters | None = None,
        page: PageOptions | None = None,
    ) -> ArticlePage:
        return self.store.find_by_country([country], page=page, filters=filters)

    def get_sources(self, filters: ArticleFilters | None = None) -> list[SourceStat]:
        return self.store.aggregate_source_stats(filters)

    def get_stats(self, now: datetime | None = None) -> dict:
        return self.store.get_totals(now)

    def check_freshness(self, filters: ArticleFilters | None = None, now: datetime | None = None) -> dict:
        """Fresh when any matching record was fetched within the expiry window."""
        now = now or utcnow()
        filters = filters or ArticleFilters()
        is_fresh = self.store.has_fresh_cache(filters, max_age=self.cache_expiry, now=now)
        return {
            "is_fresh": is_fresh,
            "cache_expiry_minutes": int(self.cache_expiry.total_seconds() // 60),
            "filters": filters.describe(),
            "checked_at": now.isoformat(),
        }
