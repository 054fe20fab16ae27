"""FastAPI application entry point.

Store Directory API - list, tag, search and locate local businesses.
"""

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from app.routes import api_router
from app.schemas import ErrorResponse
from app.services.errors import StoreDirectoryError
from app.services.media import MediaIngestor
from app.settings import Settings, get_settings
from app.stores.base import StoreBackend
from app.stores.memory import InMemoryBackend
from app.stores.redis import FacetCache

logger = logging.getLogger("uvicorn.error")


def build_backend(settings: Settings) -> StoreBackend:
    """Create the storage backend named by STORAGE_BACKEND."""
    if settings.storage_backend == "memory":
        return InMemoryBackend()

    from app.stores.postgres_backend import PostgresBackend

    return PostgresBackend.from_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events.
    """
    backend: StoreBackend = app.state.backend
    cache: FacetCache | None = app.state.facet_cache

    # Validate storage connectivity early (the app still starts without it)
    try:
        await backend.ping()
        logger.info(f"Storage backend ready ({app.state.settings.storage_backend})")
    except Exception:
        logger.exception("Storage backend init failed")

    if cache is not None:
        try:
            await cache.ping()
        except Exception:
            logger.exception("Redis init failed")

    yield

    # Shutdown
    if cache is not None:
        await cache.close()
    await backend.close()


def create_app(settings: Settings | None = None, backend: StoreBackend | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        settings: Explicit configuration (defaults to environment settings).
        backend: Storage backend to use instead of the one named in settings.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Store directory: listings, tags, search, nearby stores and hearts",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.state.settings = settings
    app.state.backend = backend or build_backend(settings)
    app.state.facet_cache = FacetCache.from_settings(settings)
    app.state.media = MediaIngestor(settings.uploads_dir, width=settings.photo_width)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreDirectoryError)
    async def domain_exception_handler(request: Request, exc: StoreDirectoryError) -> JSONResponse:
        """Render expected failures (not found, not owner, bad upload...)."""
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse.of(exc.code, exc.message, exc.detail).model_dump(),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed path, query or header values, reported per field."""
        fields: dict[str, str] = {}
        for err in exc.errors():
            fields.setdefault(".".join(str(part) for part in err["loc"]), err["msg"])
        return JSONResponse(
            status_code=422,
            content=ErrorResponse.of("VALIDATION_ERROR", "Invalid request", {"fields": fields}).model_dump(),
        )

    # Exception handler for structured error format
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler returning structured error format."""
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=500,
            content=ErrorResponse.of(
                "INTERNAL_ERROR",
                str(exc) if settings.debug else "Internal server error",
            ).model_dump(),
        )

    # Health check endpoint
    @app.get("/health", tags=["health"])
    async def health_check() -> dict[str, bool]:
        """Health check endpoint."""
        return {"ok": True}

    # Include API routes
    app.include_router(api_router)

    # Uploaded store photos
    app.mount(
        "/uploads",
        StaticFiles(directory=settings.uploads_dir, check_dir=False),
        name="uploads",
    )

    return app


# Application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
