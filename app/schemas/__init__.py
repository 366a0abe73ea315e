"""
Pydantic schemas for API request/response validation.
"""

from app.schemas.news import (
    ArticleOut,
    ArticleSource,
    Envelope,
    ErrorEnvelope,
    PaginationInfo,
    RefreshRequest,
    RefreshResult,
    SourceOut,
    TriggerRequest,
    TriggerResponse,
)

__all__ = [
    "ArticleOut",
    "ArticleSource",
    "Envelope",
    "ErrorEnvelope",
    "PaginationInfo",
    "RefreshRequest",
    "RefreshResult",
    "SourceOut",
    "TriggerRequest",
    "TriggerResponse",
]
