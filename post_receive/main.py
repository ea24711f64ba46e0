"""FastAPI application factory with lifespan context manager."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from post_receive.config import settings
from post_receive.db.engine import dispose_engine, init_engine
from post_receive.exceptions import EventRecordingError, PushPipelineError, RangeResolutionError
from post_receive.logging_config import configure_logging
from post_receive.middleware.api_key import ApiKeyMiddleware
from post_receive.routers import health, hooks


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan: logging, database engine and production deps."""
    configure_logging(json_logs=not settings.debug, log_level=settings.log_level)
    await init_engine(settings.database_url)

    if settings.gcp_project:
        from post_receive.dependencies import init_production_deps

        init_production_deps(
            gcp_project=settings.gcp_project,
            gcp_location=settings.gcp_location,
            cloud_tasks_queue=settings.cloud_tasks_queue,
            task_handler_base_url=settings.task_handler_base_url,
        )

    yield
    await dispose_engine()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(ApiKeyMiddleware)

if settings.cors_origins:
    from fastapi.middleware.cors import CORSMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",")],
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RangeResolutionError)
async def range_resolution_handler(request: Request, exc: RangeResolutionError) -> JSONResponse:
    """A push whose commit range cannot be resolved is rejected as unprocessable."""
    logger = structlog.get_logger()
    logger.warning("range_resolution_failed", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)}
    )


@app.exception_handler(EventRecordingError)
async def event_recording_handler(request: Request, exc: EventRecordingError) -> JSONResponse:
    """The activity store is unavailable; the caller may retry the whole push."""
    logger = structlog.get_logger()
    logger.error("event_recording_failed", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)}
    )


@app.exception_handler(PushPipelineError)
async def pipeline_error_handler(request: Request, exc: PushPipelineError) -> JSONResponse:
    """Return a JSON 500 for any other pipeline failure."""
    logger = structlog.get_logger()
    logger.exception("push_pipeline_failed", path=request.url.path)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return a JSON 500 response for any unhandled exception."""
    logger = structlog.get_logger()
    logger.exception("unhandled_exception", path=request.url.path, method=request.method)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.include_router(health.router)
app.include_router(hooks.router)
