"""
Reindeer Letter - Main FastAPI Application

Entry point for the application. Mounts all module routers.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from reindeer_letter.core.config import settings
from reindeer_letter.core.database import init_db, close_db
from reindeer_letter.core.errors import register_error_handlers
from reindeer_letter.core.middleware import (
    configure_rate_limiting,
    add_security_headers,
)
from reindeer_letter.modules.auth.routes import router as auth_router
from reindeer_letter.modules.letters.routes import router as letters_router
from reindeer_letter.api.internal import router as internal_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.

    Runs on startup and shutdown.
    """
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")

    from reindeer_letter.core.sentry import init_sentry
    init_sentry()

    # Initialize database (only in development - use Alembic in production)
    if settings.ENVIRONMENT == "development":
        await init_db()

    yield

    logger.info("Shutting down...")
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    description="Write letters now, deliver them on the day you choose",
    version="0.1.0",
    docs_url="/docs" if settings.DEBUG else None,  # Disable docs in production
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:8000"] if settings.DEBUG else [settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Rate limiting, then security headers on every response
limiter = configure_rate_limiting(app)
add_security_headers(app)

register_error_handlers(app)

app.include_router(auth_router)
app.include_router(letters_router)
app.include_router(internal_router, prefix="/internal", tags=["internal"])


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring.

    Status codes:
    - healthy: All systems operational
    - degraded: Some warnings but functional
    - unhealthy: Critical components down
    """
    from reindeer_letter.core.health import get_health_metrics

    metrics = await get_health_metrics()

    return {
        "service": settings.APP_NAME,
        "version": "0.1.0",
        "environment": settings.ENVIRONMENT,
        **metrics,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "reindeer_letter.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
