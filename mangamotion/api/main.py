"""Main FastAPI application for MangaMotion."""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from mangamotion import __version__
from mangamotion.api.deps import limiter
from mangamotion.api.routers import jobs, music, projects, proxy
from mangamotion.core.config import Settings, get_settings
from mangamotion.core.exceptions import (
    AnimationNotFoundError,
    ProjectNotFoundError,
    RequestInProgressError,
    WorkflowError,
)
from mangamotion.core.logging_config import get_logger
from mangamotion.core.retry import PollConfig, Sleep
from mangamotion.proxy.gateway import InferenceGateway
from mangamotion.proxy.service import ProxyService
from mangamotion.workflow.fallback import FallbackPolicy
from mangamotion.workflow.service import WorkflowService
from mangamotion.workflow.store import KeyValueStorage, MusicLibrary, ProjectStore

logger = get_logger("api.main")


async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    status = 404 if isinstance(exc, (ProjectNotFoundError, AnimationNotFoundError)) else 409
    return JSONResponse(status_code=status, content={"error": exc.message, "details": exc.details})


async def in_progress_handler(request: Request, exc: RequestInProgressError) -> JSONResponse:
    return JSONResponse(status_code=202, content={"status": "in_progress", "message": exc.message})


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Sleep = asyncio.sleep,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use (environment settings if not provided)
        transport: httpx transport for the remote services, for tests
        sleep: Coroutine used for retry pauses and poll intervals
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = httpx.AsyncClient(transport=transport, follow_redirects=True)
        storage = KeyValueStorage(settings.data_dir)
        project_store = ProjectStore(storage)
        project_store.load()
        music_library = MusicLibrary(storage)
        music_library.load()

        proxy_service = ProxyService(InferenceGateway(client, settings), settings, sleep=sleep)
        app.state.proxy = proxy_service
        app.state.music = music_library
        app.state.workflow = WorkflowService(
            project_store,
            proxy_service,
            fallback=FallbackPolicy(settings.fallback_panel_slots),
            music=music_library,
            poll_config=PollConfig(settings.poll_interval, settings.poll_max_attempts),
            route_budget=settings.route_budget,
            sleep=sleep,
        )
        logger.info(f"MangaMotion API started, data in {settings.data_dir}")
        try:
            yield
        finally:
            await client.aclose()
            logger.info("MangaMotion API stopped")

    app = FastAPI(
        title="MangaMotion API",
        description="Turn manga pages into animated clips",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(WorkflowError, workflow_error_handler)
    app.add_exception_handler(RequestInProgressError, in_progress_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(proxy.router, prefix="/api", tags=["proxy"])
    app.include_router(projects.router, prefix="/api/projects", tags=["projects"])
    app.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])
    app.include_router(music.router, prefix="/api/music", tags=["music"])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"message": "MangaMotion API", "version": __version__}

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


def start_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Start the FastAPI server."""
    uvicorn.run(
        "mangamotion.api.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="warning",
    )


if __name__ == "__main__":
    start_server()
