# app/services/normalizer.py
"""
Article normalizer.

Maps each provider's raw article model onto the canonical ArticleRecord and
derives the dedup key `<provider>_<native id or url>`. The provider prefix
keeps identical URLs from different providers distinct.

Raw articles without a title, a url or a parseable publication time are
rejected; nothing partial is emitted.
"""

import logging
from datetime import UTC, datetime

from app.constants import ArticleLimits
from app.models import ProviderTag, utcnow
from app.services.api_fetchers.base import FetchParams
from app.services.api_fetchers.types import NewsApiOrgArticle, NewsDataArticle
from app.services.records import ArticleRecord, SourceRef

logger = logging.getLogger(__name__)

# NewsData.io pubDate format, in UTC: "2024-01-15 12:30:00"
NEWSDATA_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class NormalizationRejection(Exception):
    """A raw article is missing a required field."""

    def __init__(self, provider: ProviderTag, reason: str, ref: str | None = None):
        self.provider = provider
        self.reason = reason
        self.ref = ref
        super().__init__(f"{provider.value}: {reason}" + (f" ({ref})" if ref else ""))


def make_article_id(provider: ProviderTag, native_id: str | None, url: str) -> str:
    return f"{provider.value}_{native_id or url}"


def parse_published_at(value: str | None) -> datetime | None:
    """
    Parse a provider timestamp into an aware UTC datetime.

    Accepts NewsData.io's "YYYY-MM-DD HH:MM:SS" (UTC) and ISO-8601 with or
    without offset. Returns None when the value is absent or unparseable.
    """
    if not value:
        return None
    value = value.strip()
    try:
        parsed = datetime.strptime(value, NEWSDATA_DATE_FORMAT)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _clean_set(values) -> list[str]:
    """Lowercase, drop blanks and duplicates, keep first-seen order."""
    seen: list[str] = []
    for v in values or []:
        v = v.strip().lower()
        if v and v not in seen:
            seen.append(v)
    return seen


def _context_set(value: str | None) -> list[str]:
    if not value:
        return []
    return _clean_set(value.split(","))


class ArticleNormalizer:
    """Converts raw provider articles to ArticleRecord."""

    def __init__(self, clock=utcnow):
        self._clock = clock

    def normalize(
        self,
        provider: ProviderTag,
        raw: NewsDataArticle | NewsApiOrgArticle,
        context: FetchParams | None = None,
    ) -> ArticleRecord:
        """
        Normalize one raw article.

        Args:
            provider: Which upstream produced `raw`
            raw: The provider's raw article model
            context: The request that produced `raw`; NewsAPI.org articles
                take their category/country from it

        Raises:
            NormalizationRejection: missing title or url, or unparseable
                publication time
        """
        context = context or FetchParams()
        if provider is ProviderTag.NEWSDATA:
            if not isinstance(raw, NewsDataArticle):
                raise TypeError(f"expected NewsDataArticle, got {type(raw).__name__}")
            return self._from_newsdata(raw)
        if provider is ProviderTag.NEWSAPI:
            if not isinstance(raw, NewsApiOrgArticle):
                raise TypeError(f"expected NewsApiOrgArticle, got {type(raw).__name__}")
            return self._from_newsapi_org(raw, context)
        raise ValueError(f"Unknown provider: {provider}")

    def normalize_batch(
        self,
        provider: ProviderTag,
        raws: list,
        context: FetchParams | None = None,
    ) -> tuple[list[ArticleRecord], int]:
        """Normalize a page of raw articles. Returns (records, rejected count)."""
        records: list[ArticleRecord] = []
        rejected = 0
        for raw in raws:
            try:
                records.append(self.normalize(provider, raw, context))
            except NormalizationRejection as e:
                rejected += 1
                logger.debug(f"Rejected article: {e}")
        if rejected:
            logger.info(
                f"Rejected {rejected}/{len(raws)} {provider.value} articles missing required fields",
                extra={"provider": provider.value},
            )
        return records, rejected

    def _require(self, provider: ProviderTag, title, url, published_raw, ref) -> datetime:
        if not title:
            raise NormalizationRejection(provider, "missing title", ref)
        if not url:
            raise NormalizationRejection(provider, "missing url", ref)
        published_at = parse_published_at(published_raw)
        if published_at is None:
            raise NormalizationRejection(provider, f"unparseable publishedAt {published_raw!r}", ref)
        return published_at

    def _from_newsdata(self, raw: NewsDataArticle) -> ArticleRecord:
        provider = ProviderTag.NEWSDATA
        published_at = self._require(provider, raw.title, raw.link, raw.pubDate, raw.article_id or raw.link)

        return ArticleRecord(
            article_id=make_article_id(provider, raw.article_id, raw.link),
            title=raw.title.strip(),
            description=raw.description or "",
            content=raw.content or "",
            url=raw.link,
            image_url=raw.image_url,
            video_url=raw.video_url,
            published_at=published_at,
            source=SourceRef(
                id=raw.source_id,
                name=raw.source_name or raw.source_id or ArticleLimits.UNKNOWN_SOURCE_NAME,
            ),
            author=", ".join(raw.creator) if raw.creator else None,
            category=_clean_set(raw.category),
            country=_clean_set(raw.country),
            language=(raw.language or ArticleLimits.DEFAULT_LANGUAGE).lower(),
            keywords=list(dict.fromkeys(raw.keywords)),
            provider=provider,
            fetched_at=self._clock(),
        )

    def _from_newsapi_org(self, raw: NewsApiOrgArticle, context: FetchParams) -> ArticleRecord:
        provider = ProviderTag.NEWSAPI
        published_at = self._require(provider, raw.title, raw.url, raw.publishedAt, raw.url)

        return ArticleRecord(
            article_id=make_article_id(provider, None, raw.url),
            title=raw.title.strip(),
            description=raw.description or "",
            content=raw.content or "",
            url=raw.url,
            image_url=raw.urlToImage,
            video_url=None,
            published_at=published_at,
            source=SourceRef(
                id=raw.source.id,
                name=raw.source.name or ArticleLimits.UNKNOWN_SOURCE_NAME,
            ),
            author=raw.author,
            # Headlines carry no category/country; use the request's filters
            category=_context_set(context.category),
            country=_context_set(context.country),
            language=(context.language or ArticleLimits.DEFAULT_LANGUAGE).lower(),
            keywords=[],
            provider=provider,
            fetched_at=self._clock(),
        )
