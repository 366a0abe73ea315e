# app/services/ingestion.py
"""
Two-provider ingestion service.

Pipeline:
1. Fetch raw articles from NewsData.io and NewsAPI.org
2. Normalize to canonical records (drop articles missing required fields)
3. Bulk upsert into the article store

Provider failures are absorbed here: a failed parameter set is logged and
skipped, never retried within the same run. Only StoreUnavailableError
escapes to the caller.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable

from app.models import ProviderTag
from app.services.api_fetchers.base import BaseFetcher, FetchParams, UpstreamError
from app.services.article_store import ArticleStore
from app.services.normalizer import ArticleNormalizer
from app.services.records import ArticleFilters, ArticleRecord, UpsertResult

logger = logging.getLogger(__name__)


@dataclass
class CollectResult:
    """Records gathered across a sequence of parameter sets."""

    records: list[ArticleRecord] = field(default_factory=list)
    rejected: int = 0
    attempted: int = 0
    failures: list[dict] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return self.attempted - len(self.failures)


class IngestionService:
    """Fetch -> normalize -> upsert, over one fetcher per provider."""

    def __init__(
        self,
        fetchers: dict[ProviderTag, BaseFetcher],
        store: ArticleStore,
        normalizer: ArticleNormalizer | None = None,
    ):
        self.fetchers = fetchers
        self.store = store
        self.normalizer = normalizer or ArticleNormalizer()

    async def fetch_normalized(
        self,
        provider: ProviderTag,
        params: FetchParams,
    ) -> tuple[list[ArticleRecord], int]:
        """
        Fetch one parameter set and normalize the page.

        Returns:
            (records, rejected count)

        Raises:
            UpstreamError: the provider call failed
        """
        fetcher = self.fetchers.get(provider)
        if fetcher is None:
            raise UpstreamError(provider, "no fetcher configured")

        page = await fetcher.fetch(params)
        return self.normalizer.normalize_batch(provider, page.articles, params)

    async def collect(self, param_sets: Iterable[tuple[ProviderTag, FetchParams]]) -> CollectResult:
        """
        Run parameter sets one after another, in the given order.

        A failed set is logged and skipped; the remaining sets still run.
        """
        result = CollectResult()

        for provider, params in param_sets:
            result.attempted += 1
            start_time = time.time()
            try:
                records, rejected = await self.fetch_normalized(provider, params)
            except UpstreamError as e:
                logger.warning(
                    f"[INGEST] {provider.value} fetch failed for {params.describe()}: {e.message}",
                    extra={"event": "fetch_failed", "provider": provider.value, "params": params.describe()},
                )
                result.failures.append({
                    "provider": provider.value,
                    "params": params.describe(),
                    "error": e.message,
                })
                continue

            result.records.extend(records)
            result.rejected += rejected
            logger.info(
                f"[INGEST] {provider.value} {params.describe()}: {len(records)} records, {rejected} rejected",
                extra={
                    "event": "fetch_complete",
                    "provider": provider.value,
                    "articles": len(records),
                    "rejected": rejected,
                    "duration_ms": int((time.time() - start_time) * 1000),
                },
            )

        return result

    async def commit(self, records: list[ArticleRecord]) -> UpsertResult:
        """Bulk upsert off the event loop (the store is synchronous)."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.store.bulk_upsert, records)

    async def refresh(self, filters: ArticleFilters | None = None) -> dict:
        """
        Ad-hoc fetch of both providers for one filter set, outside the slot
        timetable. Providers are fetched concurrently; a provider failure is
        reported in `provider_errors`, not raised.

        Raises:
            StoreUnavailableError: the commit could not reach the database
        """
        filters = filters or ArticleFilters()
        category = filters.category[0] if filters.category else None
        country = filters.country[0] if filters.country else None

        requests = [
            (ProviderTag.NEWSDATA, FetchParams(country=country, category=category, language=filters.language)),
            (ProviderTag.NEWSAPI, FetchParams(country=country, category=category, page_size=100)),
        ]

        logger.info(f"[INGEST] Refreshing news cache for {filters.describe()}", extra={"event": "refresh_start"})

        outcomes = await asyncio.gather(
            *(self.fetch_normalized(provider, params) for provider, params in requests),
            return_exceptions=True,
        )

        records: list[ArticleRecord] = []
        rejected = 0
        provider_errors: dict[str, str] = {}
        for (provider, _params), outcome in zip(requests, outcomes):
            if isinstance(outcome, UpstreamError):
                logger.warning(f"[INGEST] Refresh: {provider.value} failed: {outcome.message}")
                provider_errors[provider.value] = outcome.message
            elif isinstance(outcome, BaseException):
                # Anything else is a bug, not a provider failure
                raise outcome
            else:
                batch, batch_rejected = outcome
                records.extend(batch)
                rejected += batch_rejected

        upsert = await self.commit(records)

        return {
            "inserted": upsert.inserted,
            "updated": upsert.updated,
            "errors": [{"article_id": e.article_id, "message": e.message} for e in upsert.errors],
            "rejected": rejected,
            "provider_errors": provider_errors,
        }

    async def close(self) -> None:
        for fetcher in self.fetchers.values():
            await fetcher.close()
