# app/services/api_fetchers/__init__.py
"""
Upstream news API fetchers.

Each fetcher wraps one provider's HTTP API and returns that provider's raw
article model; the normalizer turns those into canonical records.

Supported APIs:
- NewsData.io (provider tag "newsdata")
- NewsAPI.org (provider tag "newsapi")
"""

from app.services.api_fetchers.base import BaseFetcher, FetchPage, FetchParams, UpstreamError
from app.services.api_fetchers.newsapi_org_fetcher import NewsApiOrgFetcher
from app.services.api_fetchers.newsdata_fetcher import NewsDataFetcher
from app.services.api_fetchers.types import NewsApiOrgArticle, NewsDataArticle

__all__ = [
    "BaseFetcher",
    "FetchPage",
    "FetchParams",
    "UpstreamError",
    "NewsDataFetcher",
    "NewsApiOrgFetcher",
    "NewsDataArticle",
    "NewsApiOrgArticle",
]
