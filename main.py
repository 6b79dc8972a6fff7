"""
FarmHub API - Main Application
Multi-farm management backend: identity, farm tenancy, finance and reports
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from farmhub.api.v1.router import api_router
from farmhub.core.config import Settings, get_settings
from farmhub.core.database import create_db_engine, create_session_factory, init_db, test_connection
from farmhub.core.errors import register_exception_handlers
from farmhub.core.security import TokenCodec
from farmhub.middleware.farm import FarmHeaderMiddleware
from farmhub.middleware.rate_limit import RateLimiter
from farmhub.services.cache_service import CacheService
from farmhub.services.email import EmailService
from farmhub.services.role_service import seed_permissions_and_roles

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    level = logging.DEBUG if settings.DEBUG else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        description="Multi-farm management API",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )

    engine = create_db_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.token_codec = TokenCodec(settings)
    app.state.cache = CacheService(settings.REDIS_URL, settings.CACHE_DEFAULT_TTL_MINUTES * 60)
    app.state.rate_limiter = RateLimiter(settings.RATE_LIMIT_STORAGE_URI, settings.RATE_LIMIT_ENABLED)
    app.state.email = EmailService(settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(FarmHeaderMiddleware)

    register_exception_handlers(app)

    # Include API router
    app.include_router(api_router, prefix=settings.API_PREFIX)

    @app.on_event("startup")
    async def startup_event():
        """Prepare the database and cache; a dead database leaves the app in degraded mode"""
        logger.info("=" * 60)
        logger.info(f"Starting {settings.APP_NAME} {settings.VERSION} ({settings.ENVIRONMENT})")
        logger.info("=" * 60)

        if test_connection(engine):
            logger.info("Database connection successful")
            if settings.AUTO_CREATE_TABLES:
                init_db(engine)
            db = app.state.session_factory()
            try:
                seed_permissions_and_roles(db)
            finally:
                db.close()
        else:
            logger.warning("APP STARTED IN DEGRADED MODE: database is not accessible")

        await app.state.cache.connect()
        app.state.cache.start_cleanup(settings.CACHE_CLEANUP_INTERVAL_SECONDS)
        logger.info("Application ready")

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.cache.close()
        engine.dispose()
        logger.info("Application stopped")

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "name": settings.APP_NAME,
            "version": settings.VERSION,
            "status": "running",
            "docs": "/docs"
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint with database and cache status"""
        db_status = "connected" if test_connection(engine) else "disconnected"
        cache: CacheService = request.app.state.cache
        cache_status = "redis" if cache.redis_available else "memory"

        return {
            "status": "healthy" if db_status == "connected" else "degraded",
            "version": settings.VERSION,
            "database": db_status,
            "cache": cache_status,
            "message": "API is running" if db_status == "connected" else "API running but database unavailable"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
