"""
Applicability Matching Service - Main Application
=================================================

FastAPI application for regulation applicability screening.

Version: 0.1.0
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from services.applicability.dependencies import get_engine
from services.applicability.errors import ApplicabilityError
from services.applicability.routes import cache, matching, organizations, regulations, similarity
from services.applicability.services.engine import ApplicabilityEngine
from services.applicability.services.regulation_store import source_from_settings
from shared.config import CacheBackend, settings
from shared.database.redis import RedisClient
from shared.logging import clear_context, get_logger, setup_logging
from shared.models.common import ErrorResponse, HealthResponse

# Setup logging
setup_logging(
    log_level=settings.log_level.value,
    json_logs=settings.is_production,
    service_name="applicability",
)

logger = get_logger(__name__)

ERROR_STATUS = {
    "invalid_attribute": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "duplicate_regulation_id": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "regulation_store_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    "organization_not_found": status.HTTP_404_NOT_FOUND,
    "location_not_found": status.HTTP_404_NOT_FOUND,
    "superseded": status.HTTP_409_CONFLICT,
}


async def _load_initial_register() -> None:
    source = source_from_settings(settings.regulation_source)
    if source is None:
        logger.info("regulation_source_not_configured")
        return

    try:
        snapshot = await get_engine().regulations.load_from(source)
        logger.info("regulation_register_loaded", version=snapshot.version)
    except ApplicabilityError as e:
        # Queries fail with a retryable error until a version is committed.
        logger.error("regulation_register_load_failed", error=e.message)


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    """Application lifespan manager."""
    logger.info(
        "applicability_starting",
        environment=settings.environment.value,
        port=settings.port,
        cache_backend=settings.cache.backend.value,
    )

    if settings.cache.backend == CacheBackend.REDIS:
        RedisClient.get_client()
        logger.info("redis_connected")

    await _load_initial_register()

    yield

    # Shutdown
    logger.info("applicability_shutting_down")
    if settings.cache.backend == CacheBackend.REDIS:
        await RedisClient.close()


# Create FastAPI application
app = FastAPI(
    title="Applicability Matching Service",
    description="Screens organizations against the legal register",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors.origins_list,
    allow_credentials=settings.cors.allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def reset_log_context(request: Request, call_next: Any) -> Any:
    clear_context()
    return await call_next(request)


# ============================================================================
# Health Check Endpoints
# ============================================================================


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(
    engine: ApplicabilityEngine = Depends(get_engine),
) -> HealthResponse:
    """
    Service health check.

    Reports the committed register version and the cache backend.
    """
    components: dict[str, dict[str, Any]] = {}

    store = engine.regulations
    components["regulation_store"] = {
        "status": "healthy" if store.is_available else "unhealthy",
        "version": store.version,
    }

    if settings.cache.backend == CacheBackend.REDIS:
        components["redis"] = await RedisClient.health_check()
    else:
        components["cache"] = {
            "status": "healthy",
            "backend": engine.cache.stats().backend,
        }

    all_healthy = all(
        c.get("status") == "healthy" for c in components.values()
    )

    return HealthResponse(
        status="healthy" if all_healthy else "degraded",
        service="applicability",
        version="0.1.0",
        components=components,
    )


@app.get("/", tags=["Health"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": "Applicability Matching Service",
        "version": "0.1.0",
        "docs": "/docs",
    }


# ============================================================================
# Include Routers
# ============================================================================

app.include_router(
    regulations.router,
    prefix="/api/v1/regulations",
    tags=["Regulations"],
)

app.include_router(
    organizations.router,
    prefix="/api/v1/organizations",
    tags=["Organizations"],
)

app.include_router(
    matching.router,
    prefix="/api/v1/matches",
    tags=["Matching"],
)

app.include_router(
    cache.router,
    prefix="/api/v1/cache",
    tags=["Cache"],
)

app.include_router(
    similarity.router,
    prefix="/api/v1/similar-profiles",
    tags=["Similar Profiles"],
)


# ============================================================================
# Error Handlers
# ============================================================================


@app.exception_handler(ApplicabilityError)
async def applicability_exception_handler(
    request: Request,
    exc: ApplicabilityError,
) -> JSONResponse:
    """Translate domain errors into the shared error envelope."""
    status_code = ERROR_STATUS.get(exc.error_code, status.HTTP_400_BAD_REQUEST)
    logger.warning(
        "applicability_error",
        error_code=exc.error_code,
        status_code=status_code,
        path=request.url.path,
        details=exc.details,
    )
    body = ErrorResponse(
        error=exc.message,
        error_code=exc.error_code,
        retryable=exc.retryable,
        details=exc.details or None,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "status_code": exc.status_code,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "Internal server error",
            "status_code": 500,
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.applicability.main:app",
        host="0.0.0.0",
        port=settings.port,
        reload=settings.is_development,
    )
