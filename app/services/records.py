# app/services/records.py
"""
Value types shared by the normalizer, the article store and the read service.
"""

from dataclasses import dataclass, field
from datetime import datetime
from math import ceil

from app.constants import Pagination
from app.models import CURRENT_SCHEMA_VERSION, ProviderTag


@dataclass
class SourceRef:
    """Publisher identity."""

    name: str
    id: str | None = None


@dataclass
class ArticleRecord:
    """Canonical article, independent of the upstream that produced it."""

    article_id: str
    title: str
    url: str
    published_at: datetime
    source: SourceRef
    provider: ProviderTag
    fetched_at: datetime
    description: str = ""
    content: str = ""
    image_url: str | None = None
    video_url: str | None = None
    author: str | None = None
    category: list[str] = field(default_factory=list)
    country: list[str] = field(default_factory=list)
    language: str = "en"
    keywords: list[str] = field(default_factory=list)
    is_deleted: bool = False
    schema_version: int = CURRENT_SCHEMA_VERSION
    rank: float | None = None  # Search relevance, only set by full-text search


@dataclass(frozen=True)
class ArticleFilters:
    """Optional equality/membership filters for read queries."""

    category: tuple[str, ...] = ()
    country: tuple[str, ...] = ()
    language: str | None = None

    @classmethod
    def build(
        cls,
        category: str | list[str] | tuple[str, ...] | None = None,
        country: str | list[str] | tuple[str, ...] | None = None,
        language: str | None = None,
    ) -> "ArticleFilters":
        """Accept single values or collections; blank values mean "no filter"."""
        return cls(
            category=_as_tuple(category),
            country=_as_tuple(country),
            language=language.strip().lower() if language and language.strip() else None,
        )

    def describe(self) -> dict:
        return {
            "category": list(self.category),
            "country": list(self.country),
            "language": self.language,
        }


def _as_tuple(value) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    return tuple(sorted({v.strip().lower() for v in value if v and v.strip()}))


@dataclass(frozen=True)
class PageOptions:
    """1-based page number and page size, clamped to sane bounds."""

    page: int = Pagination.DEFAULT_PAGE
    limit: int = Pagination.DEFAULT_LIMIT

    def __post_init__(self):
        object.__setattr__(self, "page", max(1, int(self.page)))
        object.__setattr__(self, "limit", min(max(1, int(self.limit)), Pagination.MAX_LIMIT))

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class ArticlePage:
    """One page of read results plus the total number of matches."""

    records: list[ArticleRecord]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return ceil(self.total / self.limit) if self.limit else 0


@dataclass
class SourceStat:
    id: str | None
    name: str
    article_count: int


@dataclass
class RecordError:
    """A record that could not be written, with the reason."""

    article_id: str
    message: str


@dataclass
class UpsertResult:
    inserted: int = 0
    updated: int = 0
    errors: list[RecordError] = field(default_factory=list)

    @property
    def committed(self) -> int:
        return self.inserted + self.updated
