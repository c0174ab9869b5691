"""FastAPI application setup"""
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.routing import Match

from progress_engine.api.routes import router
from progress_engine.api.middleware import setup_cors, setup_rate_limiting
from progress_engine.config import LOG_LEVEL, ENABLE_PROMETHEUS
from progress_engine.exceptions import (
    AuthenticationError,
    ContentionError,
    InvalidStateError,
    NotFoundError,
    ProgressEngineError,
    ValidationError,
)
from progress_engine.monitoring import track_request
from progress_engine.services.container import ServiceContainer, create_store

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL)
)

logger = logging.getLogger(__name__)

# Seconds a client should wait before retrying a contended completion
CONTENTION_RETRY_AFTER = 1

ERROR_STATUS_CODES = {
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateError: status.HTTP_409_CONFLICT,
    ContentionError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ValidationError: 422,  # Starlette renamed the 422 constant
}


def status_code_for(exc: ProgressEngineError) -> int:
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def route_template(app: FastAPI, request: Request) -> str:
    """Path template of the matching route, so metric labels stay bounded"""
    for route in app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return "unmatched"


def create_api_application(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Create and configure FastAPI application

    Args:
        container: Pre-built services (tests); defaults to the configured store
    """
    container = container or ServiceContainer(store=create_store())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle manager for FastAPI application"""
        # Startup
        logger.info("Starting API server...")
        await container.store.open()
        logger.info("Progress store opened")

        yield

        # Shutdown
        logger.info("Shutting down API server...")
        await container.store.close()
        logger.info("Progress store closed")

    app = FastAPI(
        title="Progress Engine API",
        description="Session lifecycle, progress, achievements and rankings for gamified exercises",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.container = container

    # Setup middleware
    setup_cors(app)
    setup_rate_limiting(app)

    @app.middleware("http")
    async def request_metrics(request: Request, call_next):
        endpoint = route_template(app, request)
        with track_request(request.method, endpoint):
            return await call_next(request)

    # Include routes
    app.include_router(router)
    if ENABLE_PROMETHEUS:
        from progress_engine.api.metrics_routes import router as metrics_router
        app.include_router(metrics_router)
        logger.info("Prometheus metrics exposed at /metrics")

    @app.exception_handler(ProgressEngineError)
    async def progress_engine_exception_handler(request: Request, exc: ProgressEngineError):
        headers = None
        if isinstance(exc, ContentionError):
            headers = {"Retry-After": str(CONTENTION_RETRY_AFTER)}
        return JSONResponse(
            status_code=status_code_for(exc),
            content=exc.to_dict(),
            headers=headers
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "detail": str(exc)}
        )

    logger.info("FastAPI application created")

    return app
