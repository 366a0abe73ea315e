# app/routers/news.py
"""
News read endpoints, plus the ad-hoc refresh.

GET  /api/news/latest              - Newest cached articles
GET  /api/news/search              - Full-text search over the cache
GET  /api/news/trending            - Most recent N articles
GET  /api/news/category/{category} - Articles in a category
GET  /api/news/country/{country}   - Articles for a country
GET  /api/news/sources             - Publishers with article counts
GET  /api/news/stats               - Cache totals
GET  /api/news/freshness           - Whether the cache is fresh for a filter
POST /api/news/refresh             - Fetch both providers now and cache the result

Every GET is served from the article store; none of them reaches upstream.
"""

import logging
from typing import Optional

from cachetools import TTLCache
from fastapi import APIRouter, Depends, Path, Query, Request, status

from app.constants import NEWS_CATEGORIES, NEWS_COUNTRIES, NEWS_LANGUAGES, Pagination, StoreDefaults
from app.schemas.news import (
    ArticleOut,
    Envelope,
    PaginationInfo,
    RefreshRequest,
    RefreshResult,
    SourceOut,
)
from app.services.ingestion import IngestionService
from app.services.news_service import NewsService
from app.services.records import ArticleFilters, ArticlePage, PageOptions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/news", tags=["news"])

# Source aggregates change only when a slot commits; cache them briefly.
# Key: (country, category, language) tuple
_sources_cache: TTLCache = TTLCache(
    maxsize=StoreDefaults.SOURCES_CACHE_MAX_ENTRIES,
    ttl=StoreDefaults.SOURCES_CACHE_TTL_SECONDS,
)


def invalidate_sources_cache():
    """Clear cached source aggregates. Call after any commit to the store."""
    _sources_cache.clear()


_CATEGORY_HELP = f"Category ({', '.join(NEWS_CATEGORIES)})"
_COUNTRY_HELP = f"Country code ({', '.join(NEWS_COUNTRIES)})"
_LANGUAGE_HELP = f"Language code ({', '.join(NEWS_LANGUAGES)})"


def get_news_service(request: Request) -> NewsService:
    return request.app.state.news_service


def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion


def _paged_envelope(page: ArticlePage, message: str) -> Envelope[list[ArticleOut]]:
    return Envelope[list[ArticleOut]](
        message=message,
        data=[ArticleOut.from_record(r) for r in page.records],
        pagination=PaginationInfo.from_page(page),
    )


@router.get("/latest", response_model=Envelope[list[ArticleOut]])
def get_latest(
    country: Optional[str] = Query(None, description=_COUNTRY_HELP),
    category: Optional[str] = Query(None, description=_CATEGORY_HELP),
    language: Optional[str] = Query(None, description=_LANGUAGE_HELP),
    page: int = Query(Pagination.DEFAULT_PAGE, ge=1, description="Page number"),
    limit: int = Query(Pagination.DEFAULT_LIMIT, ge=1, le=Pagination.MAX_LIMIT, description="Results per page"),
    service: NewsService = Depends(get_news_service),
):
    """Newest cached articles, optionally filtered."""
    filters = ArticleFilters.build(category=category, country=country, language=language)
    result = service.get_latest(filters, PageOptions(page=page, limit=limit))
    return _paged_envelope(result, "Latest news fetched successfully")


@router.get("/search", response_model=Envelope[list[ArticleOut]])
def search(
    q: str = Query(..., min_length=1, description="Search query"),
    country: Optional[str] = Query(None, description=_COUNTRY_HELP),
    category: Optional[str] = Query(None, description=_CATEGORY_HELP),
    language: Optional[str] = Query(None, description=_LANGUAGE_HELP),
    page: int = Query(Pagination.DEFAULT_PAGE, ge=1),
    limit: int = Query(Pagination.DEFAULT_LIMIT, ge=1, le=Pagination.MAX_LIMIT),
    service: NewsService = Depends(get_news_service),
):
    """
    Full-text search over cached articles.

    Title matches rank above description matches, which rank above content
    matches; ties are newest first.
    """
    filters = ArticleFilters.build(category=category, country=country, language=language)
    result = service.search(q, filters, PageOptions(page=page, limit=limit))
    return _paged_envelope(result, f"Search results for '{q}'")


@router.get("/trending", response_model=Envelope[list[ArticleOut]])
def get_trending(
    limit: int = Query(Pagination.DEFAULT_TRENDING_LIMIT, ge=1, le=Pagination.MAX_LIMIT),
    service: NewsService = Depends(get_news_service),
):
    records = service.get_trending(limit)
    return Envelope[list[ArticleOut]](
        message="Trending news fetched successfully",
        data=[ArticleOut.from_record(r) for r in records],
    )


@router.get("/category/{category}", response_model=Envelope[list[ArticleOut]])
def get_by_category(
    category: str = Path(..., description=_CATEGORY_HELP),
    country: Optional[str] = Query(None, description=_COUNTRY_HELP),
    language: Optional[str] = Query(None, description=_LANGUAGE_HELP),
    page: int = Query(Pagination.DEFAULT_PAGE, ge=1),
    limit: int = Query(Pagination.DEFAULT_LIMIT, ge=1, le=Pagination.MAX_LIMIT),
    service: NewsService = Depends(get_news_service),
):
    filters = ArticleFilters.build(country=country, language=language)
    result = service.get_by_category(category, filters, PageOptions(page=page, limit=limit))
    return _paged_envelope(result, f"News for category '{category}' fetched successfully")


@router.get("/country/{country}", response_model=Envelope[list[ArticleOut]])
def get_by_country(
    country: str = Path(..., description=_COUNTRY_HELP),
    category: Optional[str] = Query(None, description=_CATEGORY_HELP),
    language: Optional[str] = Query(None, description=_LANGUAGE_HELP),
    page: int = Query(Pagination.DEFAULT_PAGE, ge=1),
    limit: int = Query(Pagination.DEFAULT_LIMIT, ge=1, le=Pagination.MAX_LIMIT),
    service: NewsService = Depends(get_news_service),
):
    filters = ArticleFilters.build(category=category, language=language)
    result = service.get_by_country(country, filters, PageOptions(page=page, limit=limit))
    return _paged_envelope(result, f"News for country '{country}' fetched successfully")


@router.get("/sources", response_model=Envelope[list[SourceOut]])
def get_sources(
    country: Optional[str] = Query(None, description=_COUNTRY_HELP),
    category: Optional[str] = Query(None, description=_CATEGORY_HELP),
    language: Optional[str] = Query(None, description=_LANGUAGE_HELP),
    service: NewsService = Depends(get_news_service),
):
    """Distinct publishers in the cache, most articles first."""
    filters = ArticleFilters.build(category=category, country=country, language=language)
    cache_key = (filters.country, filters.category, filters.language)

    cached = _sources_cache.get(cache_key)
    if cached is not None:
        logger.debug(f"Sources cache hit: {cache_key}")
        sources = cached
    else:
        sources = [SourceOut.from_stat(s) for s in service.get_sources(filters)]
        _sources_cache[cache_key] = sources

    return Envelope[list[SourceOut]](message="Sources fetched successfully", data=sources)


@router.get("/stats", response_model=Envelope[dict])
def get_stats(service: NewsService = Depends(get_news_service)):
    return Envelope[dict](message="Statistics fetched successfully", data=service.get_stats())


@router.get("/freshness", response_model=Envelope[dict])
def check_freshness(
    country: Optional[str] = Query(None, description=_COUNTRY_HELP),
    category: Optional[str] = Query(None, description=_CATEGORY_HELP),
    language: Optional[str] = Query(None, description=_LANGUAGE_HELP),
    service: NewsService = Depends(get_news_service),
):
    filters = ArticleFilters.build(category=category, country=country, language=language)
    return Envelope[dict](message="Cache freshness checked", data=service.check_freshness(filters))


@router.post(
    "/refresh",
    response_model=Envelope[RefreshResult],
    status_code=status.HTTP_201_CREATED,
)
async def refresh(
    payload: Optional[RefreshRequest] = None,
    ingestion: IngestionService = Depends(get_ingestion_service),
):
    """
    Fetch both providers for one filter set and cache the result.

    Spends upstream credits; runs outside the slot timetable.
    """
    payload = payload or RefreshRequest()
    filters = ArticleFilters.build(
        category=payload.category,
        country=payload.country,
        language=payload.language,
    )
    result = await ingestion.refresh(filters)
    invalidate_sources_cache()
    return Envelope[RefreshResult](message="News cache refreshed", data=RefreshResult(**result))
