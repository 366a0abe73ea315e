# app/schemas/news.py
"""
Schemas for the news and scheduler endpoints.

Every response is wrapped in the same envelope:
{"success", "message", "data", "pagination"?, "timestamp"}
"""

from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from app.services.records import ArticlePage, ArticleRecord, SourceStat

DataT = TypeVar("DataT")


def _now() -> datetime:
    return datetime.now(UTC)


class ArticleSource(BaseModel):
    id: str | None = Field(None, description="Publisher id, when the provider has one")
    name: str = Field(..., description="Publisher display name")


class ArticleOut(BaseModel):
    """A cached article. The producing provider is deliberately not exposed."""

    model_config = ConfigDict(from_attributes=True)

    article_id: str = Field(..., description="Stable unique article key")
    title: str
    description: str = ""
    content: str = ""
    url: str
    image_url: str | None = None
    video_url: str | None = None
    published_at: datetime
    source: ArticleSource
    author: str | None = None
    category: list[str] = Field(default_factory=list)
    country: list[str] = Field(default_factory=list)
    language: str = "en"
    keywords: list[str] = Field(default_factory=list)
    fetched_at: datetime
    rank: float | None = Field(None, description="Search relevance score (search only)")

    @classmethod
    def from_record(cls, record: ArticleRecord) -> "ArticleOut":
        return cls(
            article_id=record.article_id,
            title=record.title,
            description=record.description,
            content=record.content,
            url=record.url,
            image_url=record.image_url,
            video_url=record.video_url,
            published_at=record.published_at,
            source=ArticleSource(id=record.source.id, name=record.source.name),
            author=record.author,
            category=record.category,
            country=record.country,
            language=record.language,
            keywords=record.keywords,
            fetched_at=record.fetched_at,
            rank=record.rank,
        )


class SourceOut(BaseModel):
    id: str | None = None
    name: str
    article_count: int

    @classmethod
    def from_stat(cls, stat: SourceStat) -> "SourceOut":
        return cls(id=stat.id, name=stat.name, article_count=stat.article_count)


class PaginationInfo(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int

    @classmethod
    def from_page(cls, page: ArticlePage) -> "PaginationInfo":
        return cls(
            current_page=page.page,
            total_pages=page.total_pages,
            total_items=page.total,
            items_per_page=page.limit,
        )


class Envelope(BaseModel, Generic[DataT]):
    """Standard success envelope."""

    success: bool = True
    message: str = "Success"
    data: DataT | None = None
    pagination: PaginationInfo | None = None
    timestamp: datetime = Field(default_factory=_now)


class ErrorEnvelope(BaseModel):
    success: bool = False
    message: str
    errors: Any | None = None
    timestamp: datetime = Field(default_factory=_now)


class RefreshRequest(BaseModel):
    """Ad-hoc refresh filters (POST /api/news/refresh)."""

    country: str | None = Field(None, description="Country code, e.g. 'in'")
    category: str | None = Field(None, description="Category, e.g. 'technology'")
    language: str | None = Field(None, description="Language code, e.g. 'en'")


class RefreshResult(BaseModel):
    inserted: int
    updated: int
    errors: list[dict] = Field(default_factory=list)
    rejected: int = 0
    provider_errors: dict[str, str] = Field(default_factory=dict)


class TriggerRequest(BaseModel):
    """Manual slot trigger (POST /api/scheduler/trigger)."""

    schedule: str | None = Field(
        None,
        description="Slot name: EARLY_MORNING, MORNING, AFTERNOON, EVENING or NIGHT",
    )


class TriggerResponse(BaseModel):
    schedule: str
    status: str
