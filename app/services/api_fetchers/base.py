# app/services/api_fetchers/base.py
"""
Base classes and types for News API fetchers.

Defines the abstract BaseFetcher interface, the provider-neutral FetchParams
filter bag, and UpstreamError, the only exception a fetcher lets escape.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Generic, TypeVar

from app.models import ProviderTag

RawArticleT = TypeVar("RawArticleT")


@dataclass(frozen=True)
class FetchParams:
    """
    Provider-neutral request filters.

    `page` is an opaque continuation token for NewsData.io and a 1-based page
    number for NewsAPI.org; each fetcher maps it to its own wire format.
    """

    country: str | None = None
    category: str | None = None
    language: str | None = None
    query: str | None = None
    page: str | int | None = None
    page_size: int | None = None

    def describe(self) -> dict[str, Any]:
        """Non-empty fields, for log lines."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class FetchPage(Generic[RawArticleT]):
    """One page of raw provider articles."""

    articles: list[RawArticleT] = field(default_factory=list)
    next_page: str | int | None = None
    total_results: int | None = None


class UpstreamError(Exception):
    """
    A provider call failed: transport error, timeout, non-2xx status,
    unparseable body, or a provider-reported error.
    """

    def __init__(self, provider: ProviderTag, message: str, status_code: int | None = None):
        self.provider = provider
        self.message = message
        self.status_code = status_code
        super().__init__(f"{provider.value}: {message}")


class BaseFetcher(ABC, Generic[RawArticleT]):
    """
    Abstract base class for news API fetchers.

    All API fetchers must implement this interface to plug into the
    ingestion service.
    """

    @abstractmethod
    async def fetch(self, params: FetchParams) -> FetchPage[RawArticleT]:
        """
        Fetch one page of raw articles matching params.

        Raises:
            UpstreamError: on any provider, transport or decoding failure
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (close HTTP client, etc.)."""
        pass

    @property
    @abstractmethod
    def provider(self) -> ProviderTag:
        """Return the provider tag this fetcher produces articles for."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
