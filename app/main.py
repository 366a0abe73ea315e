# app/main.py
"""
News cache API.

The lifespan is the composition root: it builds the store, the fetchers,
the ingestion service and the fetch scheduler once per process and keeps
them on app.state for the routers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import Settings, get_settings
from app.database import SessionLocal, init_db
from app.fetch_schedule import ScheduleConfigError
from app.logging_config import configure_logging
from app.models import ProviderTag
from app.routers import news_router, scheduler_router
from app.schemas.news import Envelope, ErrorEnvelope
from app.services.api_fetchers import NewsApiOrgFetcher, NewsDataFetcher
from app.services.article_store import ArticleStore, StoreUnavailableError
from app.services.fetch_scheduler import NewsFetchScheduler
from app.services.freshness import FreshnessTracker
from app.services.ingestion import IngestionService
from app.services.news_service import NewsService

logger = logging.getLogger(__name__)


def build_services(settings: Settings, session_factory=SessionLocal) -> dict:
    """Wire store -> read service, fetchers -> ingestion -> scheduler."""
    store = ArticleStore(session_factory)

    if not settings.NEWSDATA_API_KEY:
        logger.warning("NEWSDATA_API_KEY is not set; NewsData.io fetches will fail")
    if not settings.NEWSAPI_ORG_API_KEY:
        logger.warning("NEWSAPI_ORG_API_KEY is not set; NewsAPI.org fetches will fail")

    fetchers = {
        ProviderTag.NEWSDATA: NewsDataFetcher(
            api_key=settings.NEWSDATA_API_KEY or "",
            base_url=settings.NEWSDATA_BASE_URL,
            timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        ),
        ProviderTag.NEWSAPI: NewsApiOrgFetcher(
            api_key=settings.NEWSAPI_ORG_API_KEY or "",
            base_url=settings.NEWSAPI_ORG_BASE_URL,
            timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        ),
    }
    ingestion = IngestionService(fetchers, store)

    tracker = FreshnessTracker(
        daily_limits={
            ProviderTag.NEWSDATA: settings.NEWSDATA_DAILY_LIMIT,
            ProviderTag.NEWSAPI: settings.NEWSAPI_ORG_DAILY_LIMIT,
        }
    )
    scheduler = NewsFetchScheduler(
        ingestion,
        tracker=tracker,
        timezone=settings.SCHEDULER_TIMEZONE,
        bootstrap_when_empty=settings.SCHEDULER_BOOTSTRAP_WHEN_EMPTY,
        bootstrap_slot=settings.SCHEDULER_BOOTSTRAP_SLOT,
        bootstrap_delay_seconds=settings.SCHEDULER_BOOTSTRAP_DELAY_SECONDS,
    )

    return {
        "store": store,
        "news_service": NewsService(store, cache_expiry_minutes=settings.CACHE_EXPIRY_MINUTES),
        "ingestion": ingestion,
        "scheduler": scheduler,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(json_format=settings.LOG_JSON, level=settings.LOG_LEVEL)

    init_db()
    services = build_services(settings)
    for name, service in services.items():
        setattr(app.state, name, service)

    if settings.SCHEDULER_ENABLED:
        await app.state.scheduler.start()
    else:
        logger.info("Fetch scheduler disabled (SCHEDULER_ENABLED=false)")

    logger.info(f"News cache API started ({settings.ENVIRONMENT})")
    try:
        yield
    finally:
        await app.state.scheduler.stop(cancel_running=True)
        await app.state.ingestion.close()
        logger.info("News cache API stopped")


def _error(status_code: int, message: str, errors=None) -> JSONResponse:
    body = ErrorEnvelope(message=message, errors=errors)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body, exclude_none=True))


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
        logger.error(f"{request.method} {request.url.path}: article store unavailable")
        return _error(status.HTTP_503_SERVICE_UNAVAILABLE, "News store is temporarily unavailable")

    @app.exception_handler(ScheduleConfigError)
    async def schedule_config_handler(request: Request, exc: ScheduleConfigError):
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
            for err in exc.errors()
        ]
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request parameters", errors=errors)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
            message = f"Route {request.url.path} not found"
        return _error(exc.status_code, message)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(title="News Nexus API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(news_router)
    app.include_router(scheduler_router)

    @app.get("/api/health", response_model=Envelope[dict])
    def health() -> Envelope[dict]:
        scheduler = getattr(app.state, "scheduler", None)
        return Envelope[dict](
            message="News Nexus API is running",
            data={
                "status": "ok",
                "environment": settings.ENVIRONMENT,
                "scheduler_running": bool(scheduler and scheduler.is_running),
            },
        )

    return app


app = create_app()
