# app/services/api_fetchers/newsapi_org_fetcher.py
"""
NewsAPI.org fetcher.

Uses the top-headlines endpoint, authenticated with the `X-Api-Key` header and
paginated by `page` + `pageSize`. Headlines carry no per-article category or
country; the normalizer takes those from the request that produced them.

API Documentation: https://newsapi.org/docs/endpoints/top-headlines
"""

import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError

from app.models import ProviderTag
from app.services.api_fetchers.base import BaseFetcher, FetchPage, FetchParams, UpstreamError
from app.services.api_fetchers.types import NewsApiOrgArticle

logger = logging.getLogger(__name__)


class NewsApiOrgFetcher(BaseFetcher[NewsApiOrgArticle]):
    """
    Fetch raw top headlines from NewsAPI.org.

    Rate limits:
    - Developer: 100 requests/day
    - pageSize max 100
    """

    BASE_URL = "https://newsapi.org/v2"
    MAX_PAGE_SIZE = 100
    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize NewsAPI.org fetcher.

        Args:
            api_key: NewsAPI.org API key, sent as X-Api-Key
            base_url: API root, without trailing slash
            timeout: HTTP request timeout in seconds
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "X-Api-Key": api_key,
                "Accept": "application/json",
            },
        )

    @property
    def provider(self) -> ProviderTag:
        return ProviderTag.NEWSAPI

    def _page_number(self, params: FetchParams) -> int | None:
        if not params.page:
            return None
        try:
            page = int(params.page)
        except (TypeError, ValueError):
            page = 0
        if page < 1:
            raise UpstreamError(self.provider, f"invalid page number: {params.page!r}")
        return page

    def _build_query(self, params: FetchParams) -> dict[str, Any]:
        # top-headlines has no language parameter
        query: dict[str, Any] = {}
        if params.country:
            query["country"] = params.country
        if params.category:
            query["category"] = params.category
        if params.query:
            query["q"] = params.query
        page = self._page_number(params)
        if page is not None:
            query["page"] = page
        if params.page_size:
            query["pageSize"] = min(params.page_size, self.MAX_PAGE_SIZE)
        return query

    async def fetch(self, params: FetchParams) -> FetchPage[NewsApiOrgArticle]:
        """
        Fetch one page of NewsAPI.org headlines.

        Args:
            params: Filters; `page` is a 1-based page number

        Returns:
            FetchPage whose `next_page` is the following page number, or None
            when the reported total has been reached

        Raises:
            UpstreamError: on transport failure, timeout, non-2xx status,
                non-JSON body or `status: "error"`
        """
        start_time = time.time()
        query = self._build_query(params)

        try:
            response = await self.client.get(f"{self.base_url}/top-headlines", params=query)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"NewsAPI.org API error: {e.response.status_code} - {e.response.text[:200]}")
            raise UpstreamError(
                self.provider,
                f"HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TimeoutException as e:
            logger.error(f"NewsAPI.org request timed out: {params.describe()}")
            raise UpstreamError(self.provider, "request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"NewsAPI.org request failed: {e}")
            raise UpstreamError(self.provider, f"transport error: {e}") from e
        except httpx.InvalidURL as e:
            logger.error(f"NewsAPI.org request URL is invalid: {e}")
            raise UpstreamError(self.provider, f"invalid request URL: {e}") from e
        except ValueError as e:
            raise UpstreamError(self.provider, "response body is not valid JSON") from e

        if not isinstance(data, dict):
            raise UpstreamError(self.provider, "unexpected response shape")

        if data.get("status") != "ok":
            error_msg = data.get("message") or data.get("code") or "Unknown error"
            logger.error(f"NewsAPI.org API error: {error_msg}")
            raise UpstreamError(self.provider, str(error_msg), status_code=response.status_code)

        raw_articles = data.get("articles") or []
        if not isinstance(raw_articles, list):
            raise UpstreamError(self.provider, "`articles` is not a list")

        articles: list[NewsApiOrgArticle] = []
        for raw in raw_articles:
            try:
                articles.append(NewsApiOrgArticle.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping malformed NewsAPI.org article: {e.error_count()} errors")
                continue

        total_results = data.get("totalResults")
        page = query.get("page", 1)
        page_size = params.page_size or len(raw_articles)
        next_page = None
        if isinstance(total_results, int) and page_size and page * page_size < total_results:
            next_page = page + 1

        logger.info(
            f"NewsAPI.org fetched {len(articles)} articles in {int((time.time() - start_time) * 1000)}ms",
            extra={"provider": self.provider.value, "articles": len(articles)},
        )

        return FetchPage(articles=articles, next_page=next_page, total_results=total_results)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
