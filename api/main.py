"""
GitHub Analytics Service

FastAPI application that:
1. Serves stored GitHub users, refreshing stale ones from the GitHub API
2. Computes leaderboards and analytics over stored users
3. Caches upstream responses and computed results in namespaced in-process stores
4. Exposes cache health, statistics and manual invalidation
"""

import logging
import sys
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from api import analytics, cache, leaderboard, users
from api.dependencies import ServiceContainer, build_container
from src import __version__
from src.database import check_db_connection, init_db
from src.github import GitHubAPIError, GitHubRateLimitError
from src.services import AppError, from_github_error
from src.utils.config import get_settings
from src.utils.helpers import utcnow

load_dotenv()

# Configure logging to stdout
logging.basicConfig(
    level=getattr(logging, get_settings().LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def _error_response(status_code: int, error_type: str, message: str, **extra) -> JSONResponse:
    error = {"type": error_type, "message": message}
    error.update(extra)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "timestamp": utcnow().isoformat()},
    )


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application.

    A prebuilt container skips database initialization and service wiring
    at startup.
    """
    app = FastAPI(
        title="GitHub Analytics Service",
        description="GitHub user analytics, leaderboards and trends over a multi-tier cache",
        version=__version__,
    )
    if container is not None:
        app.state.container = container

    # ========================================================================
    # ERROR HANDLERS
    # ========================================================================

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return _error_response(exc.status_code, exc.error_type, exc.message)

    @app.exception_handler(GitHubAPIError)
    async def github_error_handler(request: Request, exc: GitHubAPIError):
        error = from_github_error(exc)
        extra = {}
        if isinstance(exc, GitHubRateLimitError):
            logger.warning(f"GitHub rate limit hit on {request.url.path}")
            extra["reset_at"] = exc.reset_at.isoformat() if exc.reset_at else None
        elif error.status_code >= 500:
            logger.error(f"GitHub API error on {request.url.path}: {exc}")
        return _error_response(error.status_code, error.error_type, error.message, **extra)

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    @app.on_event("startup")
    async def startup_event():
        if getattr(app.state, "container", None) is None:
            logger.info("Initializing database...")
            init_db()
            app.state.container = build_container()
        app.state.container.coordinator.start()
        logger.info("GitHub Analytics Service started")

    @app.on_event("shutdown")
    async def shutdown_event():
        container = app.state.container
        await container.users.wait_for_refreshes()
        await container.coordinator.close()
        await container.github.close()
        logger.info("GitHub Analytics Service stopped")

    # ========================================================================
    # ROUTES
    # ========================================================================

    @app.get("/")
    async def root():
        return {"status": "ok", "service": "GitHub Analytics Service"}

    @app.get("/health")
    def health():
        """Health check including database and cache status."""
        container = app.state.container
        cache_status = container.coordinator.health_status()
        db_connected = check_db_connection(container.session_factory)
        return {
            "status": "healthy" if db_connected and cache_status["healthy"] else "degraded",
            "timestamp": utcnow().isoformat(),
            "version": __version__,
            "database": "connected" if db_connected else "disconnected",
            "cache": {
                "healthy": cache_status["healthy"],
                "total_keys": cache_status["total_keys"],
                "hit_rate": cache_status["hit_rate"],
            },
        }

    app.include_router(users.router)
    app.include_router(leaderboard.router)
    app.include_router(analytics.router)
    app.include_router(cache.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().ENVIRONMENT == "development",
    )
