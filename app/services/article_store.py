# app/services/article_store.py
"""
Article store: the only shared mutable resource of the news cache.

Owns upsert semantics and every read query. Ingestion writes through
bulk_upsert(); the read service only calls the find_* / aggregate methods.

Write model:
- INSERT ... ON CONFLICT (article_id) DO UPDATE, one SAVEPOINT per record so
  one bad record never aborts the batch
- Concurrent upserts of the same article_id converge to whichever commits last
- Soft delete flag is never touched by ingestion
- SQLite: writes are serialized in-process behind a lock, and connections
  wait on a busy timeout instead of failing on a held write lock

Full-text search:
- PostgreSQL: ts_rank over the weighted tsvector served by the GIN index
- Other backends: weighted term-match score (title > description > content)
"""

import logging
import threading
from contextlib import contextmanager, nullcontext
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Iterator
from urllib.parse import urlparse

from sqlalchemy import case, delete, desc, func, insert, literal_column, select
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.constants import ArticleLimits, SearchWeights, StoreDefaults
from app.models import (
    PROVIDER_DISPLAY,
    SEARCH_DOCUMENT_SQL,
    Article,
    ArticleCategory,
    ArticleCountry,
    ProviderTag,
    utcnow,
)
from app.services.records import (
    ArticleFilters,
    ArticlePage,
    ArticleRecord,
    PageOptions,
    RecordError,
    SourceRef,
    SourceStat,
    UpsertResult,
)

logger = logging.getLogger(__name__)

# Bound on IN (...) lists and on search terms fed into the portable scorer
_ID_CHUNK = 500
_MAX_SEARCH_TERMS = 10

# Columns the upsert overwrites on conflict. is_deleted / deleted_at /
# created_at are preserved.
_UPSERT_COLUMNS = (
    "title",
    "description",
    "content",
    "url",
    "image_url",
    "video_url",
    "published_at",
    "source_id",
    "source_name",
    "author",
    "language",
    "keywords",
    "provider",
    "fetched_at",
    "schema_version",
    "updated_at",
)


class StoreUnavailableError(Exception):
    """The database cannot be reached at all."""
    pass


class RecordWriteError(Exception):
    """A single record failed validation or its write was refused."""

    def __init__(self, article_id: str, message: str):
        self.article_id = article_id
        self.message = message
        super().__init__(f"{article_id}: {message}")


def _is_http_url(value: str | None) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_record(record: ArticleRecord) -> None:
    """
    Check the field bounds enforced before a write.

    Raises:
        RecordWriteError: first violated constraint
    """
    if not record.article_id:
        raise RecordWriteError("<missing>", "article_id is required")
    if not record.title or not record.title.strip():
        raise RecordWriteError(record.article_id, "title is required")
    if len(record.title) > ArticleLimits.TITLE_MAX_CHARS:
        raise RecordWriteError(
            record.article_id, f"title exceeds {ArticleLimits.TITLE_MAX_CHARS} characters"
        )
    if record.description and len(record.description) > ArticleLimits.DESCRIPTION_MAX_CHARS:
        raise RecordWriteError(
            record.article_id, f"description exceeds {ArticleLimits.DESCRIPTION_MAX_CHARS} characters"
        )
    if not _is_http_url(record.url):
        raise RecordWriteError(record.article_id, f"url is not a valid http(s) URL: {record.url!r}")
    if record.image_url is not None and not _is_http_url(record.image_url):
        raise RecordWriteError(record.article_id, "image_url is not a valid http(s) URL")
    if record.video_url is not None and not _is_http_url(record.video_url):
        raise RecordWriteError(record.article_id, "video_url is not a valid http(s) URL")
    if record.published_at is None:
        raise RecordWriteError(record.article_id, "published_at is required")


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands DateTime(timezone=True) back naive; values are stored as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _chunks(items: list, size: int) -> Iterator[list]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


class ArticleStore:
    """
    Persistent collection of canonical article records.

    Every public method opens its own short-lived session from the factory,
    so one store instance is safe to share between the scheduler's executor
    threads and request handlers.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        # SQLite allows one writer; two deferred transactions that read before
        # writing deadlock on the lock upgrade and fail with "database is locked"
        bind = getattr(session_factory, "kw", {}).get("bind")
        self._write_lock = threading.Lock() if bind is not None and bind.dialect.name == "sqlite" else None

    @contextmanager
    def _session(self, write: bool = False) -> Iterator[Session]:
        guard = self._write_lock if write and self._write_lock is not None else nullcontext()
        with guard:
            session = self._session_factory()
            try:
                yield session
            except (OperationalError, InterfaceError) as e:
                session.rollback()
                logger.error(f"Article store unavailable: {e.orig}")
                raise StoreUnavailableError(str(e)) from e
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def bulk_upsert(self, records: list[ArticleRecord]) -> UpsertResult:
        """
        Insert or update records keyed by article_id.

        Each record is validated and written inside its own savepoint; a
        failing record is reported in `errors` and the rest still commit.

        Raises:
            StoreUnavailableError: the database cannot be reached
        """
        result = UpsertResult()
        if not records:
            return result

        with self._session(write=True) as session:
            existing = self._existing_ids(session, [r.article_id for r in records if r.article_id])
            upsert_stmt = self._upsert_statement(session)

            for record in records:
                try:
                    validate_record(record)
                except RecordWriteError as e:
                    result.errors.append(RecordError(article_id=e.article_id, message=e.message))
                    continue

                try:
                    with session.begin_nested():
                        session.execute(upsert_stmt, self._row_values(record))
                        self._replace_memberships(session, record)
                except (OperationalError, InterfaceError):
                    raise
                except SQLAlchemyError as e:
                    message = str(e.orig) if isinstance(e, DBAPIError) and e.orig else str(e)
                    logger.warning(f"Failed to write article {record.article_id}: {message}")
                    result.errors.append(RecordError(article_id=record.article_id, message=message))
                    continue

                if record.article_id in existing:
                    result.updated += 1
                else:
                    result.inserted += 1
                    existing.add(record.article_id)

            session.commit()

        logger.info(
            f"Upserted {result.committed}/{len(records)} articles "
            f"({result.inserted} new, {result.updated} updated, {len(result.errors)} errors)",
            extra={
                "inserted": result.inserted,
                "updated": result.updated,
                "errors": len(result.errors),
            },
        )
        return result

    def _existing_ids(self, session: Session, article_ids: list[str]) -> set[str]:
        found: set[str] = set()
        unique_ids = list(dict.fromkeys(article_ids))
        for chunk in _chunks(unique_ids, _ID_CHUNK):
            found.update(
                session.scalars(select(Article.article_id).where(Article.article_id.in_(chunk)))
            )
        return found

    def _upsert_statement(self, session: Session):
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert as dialect_insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert as dialect_insert
        else:
            raise NotImplementedError(f"Upsert is not supported on {dialect}")

        stmt = dialect_insert(Article.__table__)
        return stmt.on_conflict_do_update(
            index_elements=[Article.__table__.c.article_id],
            set_={name: stmt.excluded[name] for name in _UPSERT_COLUMNS},
        )

    def _row_values(self, record: ArticleRecord) -> dict:
        now = utcnow()
        return {
            "article_id": record.article_id,
            "title": record.title,
            "description": record.description or "",
            "content": record.content or "",
            "url": record.url,
            "image_url": record.image_url,
            "video_url": record.video_url,
            "published_at": record.published_at,
            "source_id": record.source.id,
            "source_name": record.source.name or ArticleLimits.UNKNOWN_SOURCE_NAME,
            "author": record.author,
            "language": (record.language or ArticleLimits.DEFAULT_LANGUAGE).lower(),
            "keywords": list(record.keywords),
            "provider": record.provider.value,
            "fetched_at": record.fetched_at or now,
            "is_deleted": False,
            "schema_version": record.schema_version,
            "created_at": now,
            "updated_at": now,
        }

    def _replace_memberships(self, session: Session, record: ArticleRecord) -> None:
        """Category/country are sets: the latest write replaces them wholesale."""
        for model, column, values in (
            (ArticleCategory, "category", record.category),
            (ArticleCountry, "country", record.country),
        ):
            session.execute(delete(model).where(model.article_id == record.article_id))
            unique_values = list(dict.fromkeys(v.lower() for v in values if v))
            if unique_values:
                session.execute(
                    insert(model),
                    [
                        {"article_id": record.article_id, column: v, "published_at": record.published_at}
                        for v in unique_values
                    ],
                )

    def soft_delete(self, article_id: str) -> bool:
        """Flag a record deleted. Returns False if it does not exist."""
        with self._session(write=True) as session:
            article = session.query(Article).filter(Article.article_id == article_id).first()
            if article is None:
                return False
            if not article.is_deleted:
                article.is_deleted = True
                article.deleted_at = utcnow()
                session.commit()
            return True

    def restore(self, article_id: str) -> bool:
        """Clear the deleted flag. Returns False if the record does not exist."""
        with self._session(write=True) as session:
            article = session.query(Article).filter(Article.article_id == article_id).first()
            if article is None:
                return False
            if article.is_deleted:
                article.is_deleted = False
                article.deleted_at = None
                session.commit()
            return True

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def _conditions(self, filters: ArticleFilters | None) -> list:
        filters = filters or ArticleFilters()
        conditions = [Article.is_deleted == False]  # noqa: E712
        if filters.language:
            conditions.append(Article.language == filters.language)
        if filters.category:
            conditions.append(
                Article.article_id.in_(
                    select(ArticleCategory.article_id).where(ArticleCategory.category.in_(filters.category))
                )
            )
        if filters.country:
            conditions.append(
                Article.article_id.in_(
                    select(ArticleCountry.article_id).where(ArticleCountry.country.in_(filters.country))
                )
            )
        return conditions

    def _paged(self, conditions: list, page: PageOptions, order_by: list) -> ArticlePage:
        with self._session() as session:
            total = session.query(func.count(Article.id)).filter(*conditions).scalar() or 0
            rows = (
                session.query(Article)
                .filter(*conditions)
                .order_by(*order_by)
                .offset(page.offset)
                .limit(page.limit)
                .all()
            )
            return ArticlePage(
                records=[self._to_record(row) for row in rows],
                total=total,
                page=page.page,
                limit=page.limit,
            )

    def find_recent(
        self,
        within: timedelta | None = None,
        filters: ArticleFilters | None = None,
        page: PageOptions | None = None,
        now: datetime | None = None,
    ) -> ArticlePage:
        """Newest published first; `within` bounds published_at when given."""
        conditions = self._conditions(filters)
        if within is not None:
            conditions.append(Article.published_at >= (now or utcnow()) - within)
        return self._paged(conditions, page or PageOptions(), [desc(Article.published_at), desc(Article.id)])

    def find_by_category(
        self,
        categories: list[str] | tuple[str, ...] | str,
        page: PageOptions | None = None,
        filters: ArticleFilters | None = None,
    ) -> ArticlePage:
        """Records whose category set intersects `categories`, newest first."""
        wanted = ArticleFilters.build(category=categories).category
        page = page or PageOptions()
        if not wanted:
            return ArticlePage(records=[], total=0, page=page.page, limit=page.limit)
        return self.find_recent(filters=replace(filters or ArticleFilters(), category=wanted), page=page)

    def find_by_country(
        self,
        countries: list[str] | tuple[str, ...] | str,
        page: PageOptions | None = None,
        filters: ArticleFilters | None = None,
    ) -> ArticlePage:
        """Records whose country set intersects `countries`, newest first."""
        wanted = ArticleFilters.build(country=countries).country
        page = page or PageOptions()
        if not wanted:
            return ArticlePage(records=[], total=0, page=page.page, limit=page.limit)
        return self.find_recent(filters=replace(filters or ArticleFilters(), country=wanted), page=page)

    def find_trending(self, limit: int = 20) -> list[ArticleRecord]:
        """Most recent N records, no filters."""
        page = PageOptions(page=1, limit=limit)
        with self._session() as session:
            rows = (
                session.query(Article)
                .filter(*self._conditions(None))
                .order_by(desc(Article.published_at), desc(Article.fetched_at))
                .limit(page.limit)
                .all()
            )
            return [self._to_record(row) for row in rows]

    def search_full_text(
        self,
        query: str,
        page: PageOptions | None = None,
        filters: ArticleFilters | None = None,
    ) -> ArticlePage:
        """
        Rank matches by relevance (title > description > content), ties
        broken by published_at descending.
        """
        page = page or PageOptions()
        query = (query or "").strip()
        if not query:
            return ArticlePage(records=[], total=0, page=page.page, limit=page.limit)

        conditions = self._conditions(filters)

        with self._session() as session:
            if session.get_bind().dialect.name == "postgresql":
                document = literal_column(f"({SEARCH_DOCUMENT_SQL})")
                ts_query = func.plainto_tsquery("english", query)
                rank = func.ts_rank(
                    literal_column(f"'{SearchWeights.POSTGRES_RANK_WEIGHTS}'::float4[]"),
                    document,
                    ts_query,
                )
                conditions.append(document.op("@@")(ts_query))
            else:
                rank = self._portable_rank(query)
                conditions.append(rank > 0)

            total = session.query(func.count(Article.id)).filter(*conditions).scalar() or 0
            rows = (
                session.query(Article, rank.label("rank"))
                .filter(*conditions)
                .order_by(desc("rank"), desc(Article.published_at), desc(Article.id))
                .offset(page.offset)
                .limit(page.limit)
                .all()
            )

            records = []
            for article, score in rows:
                record = self._to_record(article)
                record.rank = float(score) if score is not None else None
                records.append(record)
            return ArticlePage(records=records, total=total, page=page.page, limit=page.limit)

    def _portable_rank(self, query: str):
        terms = list(dict.fromkeys(t.lower() for t in query.split()))[:_MAX_SEARCH_TERMS]
        score = None
        for term in terms:
            term_score = (
                case((Article.title.icontains(term, autoescape=True), SearchWeights.TITLE), else_=0)
                + case((Article.description.icontains(term, autoescape=True), SearchWeights.DESCRIPTION), else_=0)
                + case((Article.content.icontains(term, autoescape=True), SearchWeights.CONTENT), else_=0)
            )
            score = term_score if score is None else score + term_score
        return score

    def count_matching(self, filters: ArticleFilters | None = None) -> int:
        with self._session() as session:
            return session.query(func.count(Article.id)).filter(*self._conditions(filters)).scalar() or 0

    def aggregate_source_stats(self, filters: ArticleFilters | None = None) -> list[SourceStat]:
        """Distinct publishers with article counts, most articles first."""
        with self._session() as session:
            count_col = func.count(Article.id).label("article_count")
            rows = (
                session.query(Article.source_id, Article.source_name, count_col)
                .filter(*self._conditions(filters))
                .group_by(Article.source_id, Article.source_name)
                .order_by(desc(count_col), Article.source_name)
                .all()
            )
            return [
                SourceStat(id=source_id, name=source_name, article_count=count)
                for source_id, source_name, count in rows
            ]

    def get_totals(self, now: datetime | None = None) -> dict:
        """Total records, per-provider counts and records fetched in the last 24h."""
        now = now or utcnow()
        recent_cutoff = now - timedelta(hours=StoreDefaults.RECENT_WINDOW_HOURS)
        live = self._conditions(None)

        with self._session() as session:
            total = session.query(func.count(Article.id)).filter(*live).scalar() or 0
            by_provider = dict(
                session.query(Article.provider, func.count(Article.id))
                .filter(*live)
                .group_by(Article.provider)
                .all()
            )
            recent = (
                session.query(func.count(Article.id))
                .filter(*live, Article.fetched_at >= recent_cutoff)
                .scalar()
                or 0
            )

        return {
            "total": total,
            "by_provider": {
                PROVIDER_DISPLAY[tag]: by_provider.get(tag.value, 0) for tag in ProviderTag
            },
            "recent_articles": recent,
        }

    def has_fresh_cache(
        self,
        filters: ArticleFilters | None = None,
        max_age: timedelta = timedelta(minutes=30),
        now: datetime | None = None,
    ) -> bool:
        """True when any matching record was fetched within max_age."""
        cutoff = (now or utcnow()) - max_age
        with self._session() as session:
            hit = (
                session.query(Article.id)
                .filter(*self._conditions(filters), Article.fetched_at >= cutoff)
                .first()
            )
            return hit is not None

    def is_empty(self) -> bool:
        with self._session() as session:
            return session.query(Article.id).first() is None

    def _to_record(self, article: Article) -> ArticleRecord:
        return ArticleRecord(
            article_id=article.article_id,
            title=article.title,
            description=article.description or "",
            content=article.content or "",
            url=article.url,
            image_url=article.image_url,
            video_url=article.video_url,
            published_at=_as_utc(article.published_at),
            source=SourceRef(id=article.source_id, name=article.source_name),
            author=article.author,
            category=[c.category for c in article.categories],
            country=[c.country for c in article.countries],
            language=article.language,
            keywords=list(article.keywords or []),
            provider=ProviderTag(article.provider),
            fetched_at=_as_utc(article.fetched_at),
            is_deleted=article.is_deleted,
            schema_version=article.schema_version,
        )
