# app/services/api_fetchers/newsdata_fetcher.py
"""
NewsData.io API fetcher.

NewsData.io paginates with an opaque `nextPage` token and authenticates with
an `apikey` query parameter. One request costs one credit.

API Documentation: https://newsdata.io/documentation
"""

import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError

from app.models import ProviderTag
from app.services.api_fetchers.base import BaseFetcher, FetchPage, FetchParams, UpstreamError
from app.services.api_fetchers.types import NewsDataArticle

logger = logging.getLogger(__name__)


class NewsDataFetcher(BaseFetcher[NewsDataArticle]):
    """
    Fetch raw articles from NewsData.io's latest-news endpoint.

    Rate limits:
    - Free: 200 credits/day
    - 1 credit = 1 request (up to 10 results on the free plan)
    """

    BASE_URL = "https://newsdata.io/api/1"
    DEFAULT_PAGE_SIZE = 10  # NewsData.io free plan max per request
    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """
        Initialize NewsData.io fetcher.

        Args:
            api_key: NewsData.io API key
            base_url: API root, without trailing slash
            timeout: HTTP request timeout in seconds
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Accept": "application/json",
            },
        )

    @property
    def provider(self) -> ProviderTag:
        return ProviderTag.NEWSDATA

    def _build_query(self, params: FetchParams) -> dict[str, Any]:
        query: dict[str, Any] = {"apikey": self.api_key}
        if params.country:
            query["country"] = params.country
        if params.category:
            query["category"] = params.category
        if params.language:
            query["language"] = params.language
        if params.query:
            query["q"] = params.query
        if params.page:
            query["page"] = params.page
        if params.page_size:
            query["size"] = min(params.page_size, self.DEFAULT_PAGE_SIZE)
        return query

    async def fetch(self, params: FetchParams) -> FetchPage[NewsDataArticle]:
        """
        Fetch one page of raw NewsData.io articles.

        Args:
            params: Filters; `page` is the `nextPage` token of a previous call

        Returns:
            FetchPage whose `next_page` is the token for the following page

        Raises:
            UpstreamError: on transport failure, timeout, non-2xx status,
                non-JSON body or `status: "error"`
        """
        start_time = time.time()

        try:
            response = await self.client.get(
                f"{self.base_url}/latest",
                params=self._build_query(params),
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"NewsData.io API error: {e.response.status_code} - {e.response.text[:200]}")
            raise UpstreamError(
                self.provider,
                f"HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TimeoutException as e:
            logger.error(f"NewsData.io request timed out: {params.describe()}")
            raise UpstreamError(self.provider, "request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"NewsData.io request failed: {e}")
            raise UpstreamError(self.provider, f"transport error: {e}") from e
        except httpx.InvalidURL as e:
            logger.error(f"NewsData.io request URL is invalid: {e}")
            raise UpstreamError(self.provider, f"invalid request URL: {e}") from e
        except ValueError as e:
            raise UpstreamError(self.provider, "response body is not valid JSON") from e

        if not isinstance(data, dict):
            raise UpstreamError(self.provider, "unexpected response shape")

        # Check for API errors
        if data.get("status") != "success":
            results = data.get("results")
            error_msg = results.get("message", "Unknown error") if isinstance(results, dict) else "Unknown error"
            logger.error(f"NewsData.io API error: {error_msg}")
            raise UpstreamError(self.provider, str(error_msg), status_code=response.status_code)

        results = data.get("results") or []
        if not isinstance(results, list):
            raise UpstreamError(self.provider, "`results` is not a list")

        articles: list[NewsDataArticle] = []
        for raw in results:
            try:
                articles.append(NewsDataArticle.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping malformed NewsData.io article: {e.error_count()} errors")
                continue

        logger.info(
            f"NewsData.io fetched {len(articles)} articles in {int((time.time() - start_time) * 1000)}ms",
            extra={"provider": self.provider.value, "articles": len(articles)},
        )

        return FetchPage(
            articles=articles,
            next_page=data.get("nextPage") or None,
            total_results=data.get("totalResults"),
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
