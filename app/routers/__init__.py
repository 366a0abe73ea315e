"""
API routers for the news and scheduler endpoints.
"""

from app.routers.news import router as news_router
from app.routers.scheduler import router as scheduler_router

__all__ = [
    "news_router",
    "scheduler_router",
]
