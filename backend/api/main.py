"""
La Memoria de Venezuela: entity curation API

Matches entities extracted from news articles against Tier-1 watchlists
(OFAC sanctions and known officials) and queues uncertain matches for
LLM or human review.

Run with: uvicorn api.main:app --port 8001 --reload
"""
import os
import sqlite3
import time as _time_module
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.gzip import GZipMiddleware

# Configure structured logging FIRST (before any logger calls)
from .middleware.structlog_config import configure as configure_logging
configure_logging()

import structlog

from curation.pipeline import CurationPipeline

from .cache import app_cache
from .dependencies import get_pipeline, shutdown_pipeline
from .middleware import RequestLoggingMiddleware, register_error_handlers
from .routers import ingestion_router, review_queue_router, tier1_router

logger = structlog.get_logger("memoria.api")

# Track server start time for uptime reporting
_server_start_time = _time_module.time()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: apply migrations and load the watchlist. Shutdown: drain curator work."""
    pipeline = get_pipeline()
    logger.info(
        "startup_complete",
        watchlist_entities=len(pipeline.watchlist.snapshot()),
        watchlist_version=pipeline.watchlist.version,
        curator=pipeline.curator.provider,
        curator_enabled=pipeline.curator.enabled,
    )
    if not pipeline.curator.enabled:
        logger.warning("curator_disabled", detail="llm-review items go to human review")
    yield
    logger.info("Shutting down.")
    shutdown_pipeline()


# API metadata
API_TITLE = "La Memoria de Venezuela Curation API"
API_DESCRIPTION = """
Entity matching and curation for La Memoria de Venezuela.

### Flow

1. **Ingestion** - extracted entities (PERSON, ORG, LOCATION) are normalized
   and matched against the Tier-1 watchlist
2. **Routing** - score >= 95 auto-approve, 85-95 LLM review, below 85
   human review, no match passes through
3. **Review queue** - durable FIFO queue with an append-only audit trail

### Core Endpoints

- **Tier 1** - watchlist import (OFAC), officials, ad-hoc matching
- **Ingestion** - single and batch entity processing, curator status
- **Review Queue** - pending items, resolution, audit trail, stats
"""
API_VERSION = "1.0.0"

# Create FastAPI app
_docs_enabled = os.environ.get("ENABLE_DOCS", "true").lower() == "true"
app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs" if _docs_enabled else None,
    redoc_url="/redoc" if _docs_enabled else None,
    lifespan=lifespan,
)

# Register global error handlers
register_error_handlers(app)

# Request logging middleware (must be added before CORS/GZip so it wraps them)
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware for frontend access
cors_origins = os.environ.get(
    "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
).split(",")
if "*" in cors_origins:
    logger.warning("Wildcard CORS origin rejected for security; falling back to localhost defaults")
    cors_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Accept-Language", "X-Request-ID"],
)

# Security headers middleware
@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if request.headers.get("x-forwarded-proto") == "https":
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response

# GZip compression for responses > 1KB
app.add_middleware(GZipMiddleware, minimum_size=1000)

# Include routers
app.include_router(tier1_router, prefix="/api/v1")
app.include_router(ingestion_router, prefix="/api/v1")
app.include_router(review_queue_router, prefix="/api/v1")


@app.get("/", tags=["root"])
async def root():
    """API root - returns basic info and links."""
    return {
        "name": API_TITLE,
        "version": API_VERSION,
        "docs": "/docs",
        "endpoints": {
            "tier1_import": "/api/v1/tier1/import",
            "tier1_import_ofac": "/api/v1/tier1/import/ofac",
            "tier1_officials": "/api/v1/tier1/officials",
            "tier1_stats": "/api/v1/tier1/stats",
            "tier1_match": "/api/v1/tier1/match",
            "ingest_entity": "/api/v1/ingestion/entities",
            "ingest_batch": "/api/v1/ingestion/entities/batch",
            "curator_status": "/api/v1/ingestion/curator/status",
            "curator_retry": "/api/v1/ingestion/curator/retry",
            "review_queue": "/api/v1/review-queue",
            "review_queue_stats": "/api/v1/review-queue/stats",
            "review_item": "/api/v1/review-queue/{item_id}",
            "review_item_audit": "/api/v1/review-queue/{item_id}/audit",
            "review_item_resolve": "/api/v1/review-queue/{item_id}/resolve",
        }
    }


@app.get("/health", tags=["root"])
def health_check(pipeline: CurationPipeline = Depends(get_pipeline)):
    """Health check with database, watchlist, and curator status."""
    uptime_seconds = round(_time_module.time() - _server_start_time)

    db_info = {"status": "unknown"}
    db_reachable = False
    try:
        with pipeline.db.connection() as conn:
            conn.execute("SELECT 1").fetchone()
        db_info = {"status": "connected"}
        db_reachable = True
    except sqlite3.Error as e:
        logger.error("health_check_db_error", error=str(e))
        db_info = {"status": "error"}

    http_status = 200 if db_reachable else 503
    return JSONResponse(
        status_code=http_status,
        content={
            "status": "healthy" if db_reachable else "unavailable",
            "version": API_VERSION,
            "database": db_info,
            "watchlist": {
                "entities": len(pipeline.watchlist.snapshot()),
                "version": pipeline.watchlist.version,
            },
            "curator": {
                "provider": pipeline.curator.provider,
                "enabled": pipeline.curator.enabled,
            },
            "uptime_seconds": uptime_seconds,
        },
    )


@app.get("/metrics", tags=["root"])
async def metrics():
    """Application metrics for monitoring."""
    uptime_seconds = round(_time_module.time() - _server_start_time)
    return {
        "uptime_seconds": uptime_seconds,
        "cache": app_cache.stats(),
    }


# Main entry point
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
