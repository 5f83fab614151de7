"""
ComuniGov FastAPI Application - Main entry point.

ComuniGov coordinates institutional communication between government units:

- Entities and users with a three-tier role hierarchy
- Meetings with attendees, documents and reactions
- Subjects and tasks with comments
- Multi-channel communications (email, WhatsApp, Telegram, system notification)
- Public hearings, achievement badges, activity logs and analytics

All endpoints live under /api/v1/{resource}; the health check is /api/health.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from comunigov.core.config import settings
from comunigov.core.logging_setup import setup_logging
from comunigov.db.base import async_session_maker, init_db
from comunigov.schemas.common import HealthResponse
from comunigov.services.achievements import ensure_default_badges

from comunigov.api.v1 import (
    activity_logs, admin, analytics, auth, badges, communications, dashboard,
    entities, files, meetings, public_hearings, subjects, tasks, users
)

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    # Note: In production, use Alembic migrations instead
    await init_db()
    async with async_session_maker() as session:
        await ensure_default_badges(session)
        await session.commit()
    logger.info("%s started (env=%s)", settings.APP_NAME, settings.APP_ENV)
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="""
ComuniGov - Institutional communication platform for government units.

## Roles

- **Master implementer**: global scope
- **Entity head**: scope of their own entity
- **Entity member**: own records only
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
    expose_headers=["Content-Disposition"],
)


# ============================================================================
# HEALTH CHECK
# ============================================================================

@app.get("/api/health", response_model=HealthResponse, tags=["health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(code=200, message="API is healthy.")


# ============================================================================
# V1 ENDPOINTS
# ============================================================================

API = settings.API_V1_PREFIX

app.include_router(auth.router, prefix=f"{API}/auth", tags=["auth"])
app.include_router(users.router, prefix=f"{API}/users", tags=["users"])
app.include_router(entities.router, prefix=f"{API}/entities", tags=["entities"])
app.include_router(meetings.router, prefix=f"{API}/meetings", tags=["meetings"])
app.include_router(subjects.router, prefix=f"{API}/subjects", tags=["subjects"])
app.include_router(tasks.router, prefix=f"{API}/tasks", tags=["tasks"])
app.include_router(communications.router, prefix=f"{API}/communications", tags=["communications"])
app.include_router(files.router, prefix=f"{API}/files", tags=["files"])
app.include_router(public_hearings.router, prefix=f"{API}/public-hearings", tags=["public-hearings"])

# Badges and the per-user badge records
app.include_router(badges.router, prefix=f"{API}/badges", tags=["badges"])
app.include_router(badges.user_badges_router, prefix=f"{API}/user-badges", tags=["badges"])

app.include_router(dashboard.router, prefix=f"{API}/dashboard", tags=["dashboard"])
app.include_router(analytics.router, prefix=f"{API}/analytics", tags=["analytics"])
app.include_router(activity_logs.router, prefix=f"{API}/activity-logs", tags=["activity-logs"])
app.include_router(admin.router, prefix=f"{API}/admin", tags=["admin"])


# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
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
        "comunigov.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
