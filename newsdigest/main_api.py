# newsdigest/main_api.py
import logging
import time
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config as app_config
from .auth import IdentityProvider
from .cache import TTLCache
from .config import Settings
from .database import create_db_and_tables, make_engine, make_session_factory
from .errors import AppError, RateLimitError
from .helpers import create_response
from .pipeline import FeedProcessor
from .routers import news_routes, status_routes, translation_routes, user_routes
from .rss_client import FeedFetcher
from .security import RateLimiter, SecurityHeadersMiddleware
from .summarizer import SummarizationAdapter
from .translator import TranslationAdapter
from .user_service import UserDataService

# Configure basic logging
logging.basicConfig(
    level=getattr(logging, app_config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[Engine] = None,
    cache: Optional[TTLCache] = None,
    fetcher: Optional[FeedFetcher] = None,
    translator: Optional[TranslationAdapter] = None,
    summarizer: Optional[SummarizationAdapter] = None,
    identity_provider: Optional[IdentityProvider] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """
    Builds the API with every service constructed up front and stored on
    `app.state`. Anything not passed in is created from `settings`.
    """
    settings = settings or Settings()
    engine = engine or make_engine(settings.database_url)
    cache = cache or TTLCache(default_ttl=settings.cache_ttl)
    fetcher = fetcher or FeedFetcher(
        cache,
        max_articles=settings.max_articles,
        timeout_seconds=settings.feed_timeout_seconds,
        max_redirects=settings.feed_max_redirects,
        max_feed_size_bytes=settings.max_feed_size_bytes,
    )
    translator = translator or TranslationAdapter(
        api_key=settings.deepl_api_key,
        api_url=settings.deepl_api_url,
        max_text_length=settings.max_text_length,
        default_target_lang=settings.translation_target_lang,
    )
    summarizer = summarizer or SummarizationAdapter(
        api_key=settings.gemini_api_key,
        model_name=settings.summary_model_name,
        language=settings.summary_language,
        max_output_tokens=settings.summary_max_output_tokens,
        timeout_seconds=settings.summary_timeout_seconds,
    )
    identity_provider = identity_provider or IdentityProvider(
        url=settings.supabase_url,
        anon_key=settings.supabase_anon_key,
        service_key=settings.supabase_service_key,
        timeout_seconds=settings.auth_timeout_seconds,
    )
    rate_limiter = rate_limiter or RateLimiter(settings.rate_limit_window_seconds, settings.rate_limit_max)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("MAIN_API: Application startup initiated...")
        logger.info("MAIN_API: Initializing database...")
        create_db_and_tables(engine)
        services = app.state.feed_processor.services_used()
        logger.info(f"MAIN_API: Translation enabled: {services['translation']}, summarization enabled: {services['summarization']}")
        logger.info("MAIN_API: Application startup complete.")
        yield
        logger.info("MAIN_API: Application shutdown complete.")

    app = FastAPI(
        title="News Digest API",
        version="1.0.0",
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.cache = cache
    app.state.fetcher = fetcher
    app.state.translator = translator
    app.state.summarizer = summarizer
    app.state.identity_provider = identity_provider
    app.state.rate_limiter = rate_limiter
    app.state.user_service = UserDataService(make_session_factory(engine))
    app.state.feed_processor = FeedProcessor(
        fetcher,
        translator,
        summarizer,
        target_lang=settings.translation_target_lang,
        default_max_articles=settings.max_articles,
    )
    app.state.started_at = time.monotonic()

    # --- Middleware ---
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client_host = request.client.host if request.client else "unknown"
        logger.info(f"MAIN_API: {request.method} {request.url.path} from {client_host}")
        return await call_next(request)

    # --- Exception handlers ---
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"MAIN_API: {request.method} {request.url.path} failed: [{exc.code}] {exc.message}")
        else:
            logger.warning(f"MAIN_API: {request.method} {request.url.path} rejected: [{exc.code}] {exc.message}")
        error = {"message": exc.message, "code": exc.code}
        if exc.details:
            error["details"] = exc.details
        headers = None
        if isinstance(exc, RateLimitError) and exc.retry_after:
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(status_code=exc.status_code, content=create_response(False, error=error), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"MAIN_API: Invalid request to {request.url.path}: {exc.errors()}")
        error = {
            "message": "Invalid input data",
            "code": "VALIDATION_ERROR",
            "details": jsonable_encoder(exc.errors()),
        }
        return JSONResponse(status_code=400, content=create_response(False, error=error))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            error = {"message": "Route not found", "code": "NOT_FOUND"}
        else:
            error = {"message": str(exc.detail), "code": "HTTP_ERROR"}
        return JSONResponse(status_code=exc.status_code, content=create_response(False, error=error), headers=exc.headers)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"MAIN_API: Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        error = {"message": "Internal server error", "code": "INTERNAL_ERROR"}
        if not settings.is_production:
            error["details"] = str(exc)
            error["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
        return JSONResponse(status_code=500, content=create_response(False, error=error))

    app.include_router(status_routes.router)
    app.include_router(user_routes.router)
    app.include_router(news_routes.router)
    app.include_router(translation_routes.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("newsdigest.main_api:app", host="0.0.0.0", port=app_config.PORT)
