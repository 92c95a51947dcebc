"""FastAPI application entry point.

Storefront API - store listings, slug URLs, tag and rating reports.
"""

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from storefront.routes import api_router
from storefront.schemas import ErrorResponse
from storefront.services.mail import MailDispatcher
from storefront.services.slugs import SlugConflictError
from storefront.services.stores import StoreNotFoundError
from storefront.settings import get_settings
from storefront.stores.postgres import Database
from storefront.stores.redis import ReportCache

logger = logging.getLogger("uvicorn.error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds the process-wide clients (database, report cache, mailer), puts
    them on app.state, and tears them down on shutdown.
    """
    settings = get_settings()

    db = Database.from_settings(settings)
    await db.connect()
    try:
        await db.ping()
        logger.info("Postgres connected")
    except Exception:
        logger.exception("Postgres ping failed")
    app.state.db = db

    # Reports work without Redis; they just aren't cached.
    cache: ReportCache | None = ReportCache.from_settings(settings)
    try:
        await cache.connect()
    except (RedisError, OSError):
        logger.exception("Redis init failed, report caching disabled")
        await cache.close()
        cache = None
    app.state.report_cache = cache

    app.state.mailer = MailDispatcher.from_settings(settings)

    yield

    app.state.mailer.close()
    if cache is not None:
        await cache.close()
    await db.dispose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Store listings with slug URLs, tag and rating reports",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreNotFoundError)
    async def store_not_found_handler(request: Request, exc: StoreNotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content=ErrorResponse.build("NOT_FOUND", str(exc), {"store": exc.key}),
        )

    @app.exception_handler(SlugConflictError)
    async def slug_conflict_handler(request: Request, exc: SlugConflictError) -> JSONResponse:
        return JSONResponse(
            status_code=409,
            content=ErrorResponse.build("SLUG_CONFLICT", str(exc), {"slug": exc.slug}),
        )

    # Exception handler for structured error format
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler returning structured error format."""
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse.build(
                "INTERNAL_ERROR",
                str(exc) if settings.debug else "Internal server error",
            ),
        )

    # Health check endpoint
    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, bool]:
        """Health check endpoint."""
        return {"ok": True}

    # Include API routes
    app.include_router(api_router)

    return app


# Application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "storefront.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
