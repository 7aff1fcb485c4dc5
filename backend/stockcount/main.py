"""FastAPI application entry point."""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from stockcount.api.routes import api_router
from stockcount.core.config import settings
from stockcount.core.draft_store import RedisDraftStore, get_draft_store
from stockcount.core.logging_config import configure_logging
from stockcount.core.rate_limit import limiter
from stockcount.db.base import Base
from stockcount.db.session import SessionLocal, engine

configure_logging(settings)
logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every API request with its status and duration."""

    SKIP_PATHS = {"/", "/health", "/health/ready", "/docs", "/openapi.json"}

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        try:
            response = await call_next(request)
        except Exception as e:
            request_logger.error(
                "%s %s failed after %.3fs (client %s): %s",
                request.method, request.url.path, time.perf_counter() - started, client_ip, e,
            )
            raise

        # Client and business errors are logged at WARNING
        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        request_logger.log(
            level,
            "%s %s -> %s in %.3fs (client %s)",
            request.method, request.url.path, response.status_code, time.perf_counter() - started, client_ip,
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Stock Count service")

    # Create tables if they don't exist (for SQLite dev)
    # In production with PostgreSQL, use Alembic migrations
    if settings.database_url.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created (SQLite mode)")

    store = get_draft_store()
    logger.info(f"Draft store: {type(store).__name__}, TTL {settings.draft_ttl_hours}h")

    yield

    logger.info("Shutting down Stock Count service")


app = FastAPI(
    title="Stock Count",
    description="Barcode stock counting and reconciliation against theoretical stock",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware - added last so it runs first (Starlette LIFO order)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
    max_age=600,
)

# Include API routes
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
def health_check():
    """Basic liveness check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


@app.get("/health/ready")
def readiness_check():
    """Readiness probe with database and draft store connectivity check."""
    checks = {
        "database": "unknown",
        "redis": "unknown",
    }

    db = None
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "unhealthy"
    finally:
        if db:
            db.close()

    store = get_draft_store()
    if not settings.redis_url:
        checks["redis"] = "not configured"
    elif isinstance(store, RedisDraftStore) and store.is_connected:
        checks["redis"] = "healthy"
    else:
        checks["redis"] = "unhealthy (drafts kept in memory)"

    # Redis "not configured" counts as OK; drafts then live in memory
    all_healthy = all(c == "healthy" or c == "not configured" for c in checks.values())

    return {
        "status": "ready" if all_healthy else "degraded",
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "message": "Stock Count API",
        "docs": "/docs",
        "health": "/health",
    }
