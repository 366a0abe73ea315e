# app/constants.py
"""
Centralized magic constants organized by domain.

All hardcoded numbers/strings used throughout the codebase should be
defined here with documentation explaining their purpose.
"""


class ArticleLimits:
    """Field bounds enforced before an article is written."""

    TITLE_MAX_CHARS = 500
    DESCRIPTION_MAX_CHARS = 2000
    DEFAULT_LANGUAGE = "en"
    UNKNOWN_SOURCE_NAME = "Unknown"


class Pagination:
    """Read endpoint paging defaults."""

    DEFAULT_PAGE = 1
    DEFAULT_LIMIT = 50
    MAX_LIMIT = 100
    DEFAULT_TRENDING_LIMIT = 20


class StoreDefaults:
    """Look-back windows used by store aggregates."""

    RECENT_WINDOW_HOURS = 24            # "recent articles" in stats
    SOURCES_CACHE_TTL_SECONDS = 60      # HTTP-level cache of source aggregates
    SOURCES_CACHE_MAX_ENTRIES = 128
    SQLITE_BUSY_TIMEOUT_SECONDS = 30    # wait on another connection's write lock


class SearchWeights:
    """Relevance weights: title matches outrank description, then content."""

    TITLE = 10
    DESCRIPTION = 5
    CONTENT = 1

    # ts_rank weight array is ordered {D, C, B, A}; C=content, B=description, A=title
    POSTGRES_RANK_WEIGHTS = "{0.0, 0.1, 0.5, 1.0}"


# Categories and countries the two providers have in common
NEWS_CATEGORIES = [
    "breaking",
    "business",
    "world",
    "top",
    "technology",
    "sports",
    "entertainment",
    "health",
    "science",
    "politics",
]

NEWS_COUNTRIES = ["in", "us"]

NEWS_LANGUAGES = ["en", "hi"]
