"""Create the news article cache tables.

- news_articles: one row per canonical article, unique article_id
- news_article_categories / news_article_countries: set membership with a
  denormalized published_at for "newest first within a filter" reads
- PostgreSQL only: GIN index over the weighted title/description/content
  tsvector (A/B/C)

Revision ID: 001_create_news_articles
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_create_news_articles'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


SEARCH_DOCUMENT = (
    "setweight(to_tsvector('english', coalesce(title, '')), 'A') || "
    "setweight(to_tsvector('english', coalesce(description, '')), 'B') || "
    "setweight(to_tsvector('english', coalesce(content, '')), 'C')"
)


def upgrade() -> None:
    """Create article tables and indexes."""

    print("  Creating news_articles...")
    op.create_table(
        'news_articles',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('article_id', sa.String(1024), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text, nullable=False, server_default=''),
        sa.Column('content', sa.Text, nullable=False, server_default=''),
        sa.Column('url', sa.Text, nullable=False),
        sa.Column('image_url', sa.Text, nullable=True),
        sa.Column('video_url', sa.Text, nullable=True),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('source_id', sa.String(255), nullable=True),
        sa.Column('source_name', sa.String(255), nullable=False, server_default='Unknown'),
        sa.Column('author', sa.Text, nullable=True),
        sa.Column('language', sa.String(16), nullable=False, server_default='en'),
        sa.Column('keywords', sa.JSON, nullable=False),
        sa.Column('provider', sa.String(16), nullable=False),
        sa.Column('fetched_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_deleted', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('schema_version', sa.Integer, nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('article_id', name='uq_news_articles_article_id'),
    )

    op.create_index(
        'ix_news_articles_language_published', 'news_articles',
        ['language', sa.text('published_at DESC')],
    )
    op.create_index(
        'ix_news_articles_deleted_published', 'news_articles',
        ['is_deleted', sa.text('published_at DESC')],
    )
    op.create_index(
        'ix_news_articles_provider_published', 'news_articles',
        ['provider', sa.text('published_at DESC')],
    )
    op.create_index('ix_news_articles_fetched_at', 'news_articles', ['fetched_at'])

    print("  Creating membership tables...")
    for table, column in (
        ('news_article_categories', 'category'),
        ('news_article_countries', 'country'),
    ):
        op.create_table(
            table,
            sa.Column(
                'article_id',
                sa.String(1024),
                sa.ForeignKey('news_articles.article_id', ondelete='CASCADE'),
                primary_key=True,
            ),
            sa.Column(column, sa.String(64), primary_key=True),
            sa.Column('published_at', sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index(
            f'ix_{table}_{column}_published', table,
            [column, sa.text('published_at DESC')],
        )

    if op.get_bind().dialect.name == 'postgresql':
        print("  Creating GIN full-text index...")
        op.execute(
            f"CREATE INDEX ix_news_articles_search ON news_articles USING GIN (({SEARCH_DOCUMENT}))"
        )

    print("  Migration complete!")


def downgrade() -> None:
    """Drop article tables."""

    print("  Dropping news cache tables...")
    op.execute("DROP INDEX IF EXISTS ix_news_articles_search")
    op.drop_table('news_article_countries')
    op.drop_table('news_article_categories')
    op.drop_table('news_articles')
    print("  Downgrade complete!")
