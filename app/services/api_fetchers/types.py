# app/services/api_fetchers/types.py
"""
Raw article shapes returned by each provider.

Both providers return loosely typed JSON with optional fields and
inconsistent shapes (a creator may be a string or a list, a category a
string or a list). Each provider gets its own model so the normalizer maps
fields explicitly instead of probing open dictionaries. Unknown fields are
ignored; every field is optional here because required-field checks belong
to the normalizer.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


def _to_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return []


def _to_optional_str(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value)
    return value if value.strip() else None


class NewsDataArticle(BaseModel):
    """An entry of NewsData.io's `results` array."""

    model_config = ConfigDict(extra="ignore")

    article_id: str | None = None
    title: str | None = None
    link: str | None = None
    description: str | None = None
    content: str | None = None
    pubDate: str | None = None
    image_url: str | None = None
    video_url: str | None = None
    source_id: str | None = None
    source_name: str | None = None
    creator: list[str] = []
    category: list[str] = []
    country: list[str] = []
    language: str | None = None
    keywords: list[str] = []

    @field_validator("creator", "category", "country", "keywords", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> list[str]:
        return _to_str_list(v)

    @field_validator(
        "article_id", "title", "link", "description", "content", "pubDate",
        "image_url", "video_url", "source_id", "source_name", "language",
        mode="before",
    )
    @classmethod
    def coerce_str(cls, v: Any) -> str | None:
        return _to_optional_str(v)


class NewsApiOrgSource(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    name: str | None = None

    @field_validator("id", "name", mode="before")
    @classmethod
    def coerce_str(cls, v: Any) -> str | None:
        return _to_optional_str(v)


class NewsApiOrgArticle(BaseModel):
    """An entry of NewsAPI.org's `articles` array. Carries no category/country."""

    model_config = ConfigDict(extra="ignore")

    source: NewsApiOrgSource = NewsApiOrgSource()
    author: str | None = None
    title: str | None = None
    description: str | None = None
    url: str | None = None
    urlToImage: str | None = None
    publishedAt: str | None = None
    content: str | None = None

    @field_validator("source", mode="before")
    @classmethod
    def coerce_source(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}

    @field_validator(
        "author", "title", "description", "url", "urlToImage", "publishedAt", "content",
        mode="before",
    )
    @classmethod
    def coerce_str(cls, v: Any) -> str | None:
        return _to_optional_str(v)
