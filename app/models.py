# app/models.py
"""
News cache database models

Tables:
- Article: One normalized news article, keyed by the provider-prefixed article_id
- ArticleCategory: Category membership of an article (set semantics)
- ArticleCountry: Country membership of an article (set semantics)

Category and country are sets on the canonical record. They live in their own
tables with a denormalized published_at so "newest first within a category"
is served by a (value, published_at desc) index on any backend.
"""

from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import (
    DDL,
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
)
from sqlalchemy.orm import relationship

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(UTC)


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class ProviderTag(str, Enum):
    """Upstream API that produced an article. Prefix of every article_id."""
    NEWSDATA = "newsdata"   # NewsData.io
    NEWSAPI = "newsapi"     # NewsAPI.org


PROVIDER_DISPLAY = {
    ProviderTag.NEWSDATA: "newsdata.io",
    ProviderTag.NEWSAPI: "newsapi.org",
}


CURRENT_SCHEMA_VERSION = 1


# -----------------------------------------------------------------------------
# Article
# -----------------------------------------------------------------------------

class Article(Base):
    """Canonical news article cached from either upstream provider."""
    __tablename__ = "news_articles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    article_id = Column(String(1024), nullable=False, unique=True)  # e.g. "newsdata_abc123"

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    url = Column(Text, nullable=False)
    image_url = Column(Text, nullable=True)
    video_url = Column(Text, nullable=True)

    published_at = Column(DateTime(timezone=True), nullable=False)
    source_id = Column(String(255), nullable=True)
    source_name = Column(String(255), nullable=False, default="Unknown")
    author = Column(Text, nullable=True)
    language = Column(String(16), nullable=False, default="en")
    keywords = Column(JSON, nullable=False, default=list)

    provider = Column(String(16), nullable=False)  # ProviderTag value
    fetched_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Soft delete only; ingestion never removes rows
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    schema_version = Column(Integer, nullable=False, default=CURRENT_SCHEMA_VERSION)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    categories = relationship(
        "ArticleCategory",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ArticleCategory.category",
    )
    countries = relationship(
        "ArticleCountry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ArticleCountry.country",
    )


class ArticleCategory(Base):
    """One category an article belongs to."""
    __tablename__ = "news_article_categories"

    article_id = Column(
        String(1024),
        ForeignKey("news_articles.article_id", ondelete="CASCADE"),
        primary_key=True,
    )
    category = Column(String(64), primary_key=True)
    published_at = Column(DateTime(timezone=True), nullable=False)


class ArticleCountry(Base):
    """One country an article is filed under."""
    __tablename__ = "news_article_countries"

    article_id = Column(
        String(1024),
        ForeignKey("news_articles.article_id", ondelete="CASCADE"),
        primary_key=True,
    )
    country = Column(String(64), primary_key=True)
    published_at = Column(DateTime(timezone=True), nullable=False)


# -----------------------------------------------------------------------------
# Indexes (read-heavy workload: newest first within a filter)
# -----------------------------------------------------------------------------

Index("ix_news_articles_language_published", Article.language, Article.published_at.desc())
Index("ix_news_articles_deleted_published", Article.is_deleted, Article.published_at.desc())
Index("ix_news_articles_provider_published", Article.provider, Article.published_at.desc())
Index("ix_news_articles_fetched_at", Article.fetched_at)
Index("ix_news_article_categories_category_published", ArticleCategory.category, ArticleCategory.published_at.desc())
Index("ix_news_article_countries_country_published", ArticleCountry.country, ArticleCountry.published_at.desc())


# Weighted full-text document: A=title, B=description, C=content.
# Must stay identical to the expression used by ArticleStore.search_full_text
# so PostgreSQL can serve the query from the GIN index.
SEARCH_DOCUMENT_SQL = (
    "setweight(to_tsvector('english', coalesce(title, '')), 'A') || "
    "setweight(to_tsvector('english', coalesce(description, '')), 'B') || "
    "setweight(to_tsvector('english', coalesce(content, '')), 'C')"
)

event.listen(
    Article.__table__,
    "after_create",
    DDL(
        f"CREATE INDEX IF NOT EXISTS ix_news_articles_search "
        f"ON news_articles USING GIN (({SEARCH_DOCUMENT_SQL}))"
    ).execute_if(dialect="postgresql"),
)
