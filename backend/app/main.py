"""
Community Events API - Main entry point.

Serves the event submission and voting engine:

- Submissions: projects submitted to events, team rosters, attachments, review
- Voting: per-participant vote quotas, manual adjustments, rankings, statistics

Endpoints are available under /api/v1/; /api/health reports liveness.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import settings
from app.db.base import init_db
from app.schemas.common import HealthResponse
from app.api.v1.events import events_router, submissions_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    # Startup: create tables that do not exist yet
    await init_db()
    logger.info(f"{settings.APP_NAME} started (env={settings.APP_ENV})")
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="""
Community events backend.

## Modules

- **Submissions**: project submissions for hackathons and demo days
- **Voting**: participant voting with quotas, rankings and statistics
    """,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# HEALTH CHECK
# ============================================================================

@app.get("/api/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(code=200, message="API is healthy.")


# ============================================================================
# V1 API ENDPOINTS
# ============================================================================

# Event-scoped endpoints - /api/v1/events/{event_id}/*
app.include_router(
    events_router,
    prefix=settings.API_V1_PREFIX,
)

# Submission-scoped endpoints - /api/v1/submissions/{submission_id}/*
app.include_router(
    submissions_router,
    prefix=settings.API_V1_PREFIX,
)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc)}
        )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
