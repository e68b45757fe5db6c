"""FastAPI application factory and lifespan management."""
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fileintake.api.middleware import RequestLoggingMiddleware
from fileintake.api.routes import files, health
from fileintake.core.config import settings
from fileintake.core.exceptions import (
    FileIntakeError,
    FileNotFoundInStoreError,
    FileValidationError,
    InconsistencyError,
    StorageError,
)
from fileintake.core.logging import get_logger, setup_logging
from fileintake.storage.factory import create_storage_service
from fileintake.storage.service import StorageService

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown."""
    # Startup
    setup_logging()
    logger.info(
        "Starting FileIntake",
        version=settings.app_version,
        environment=settings.environment.value,
        storage_backend=settings.storage_backend,
    )

    # A service injected by create_app (tests) wins over settings
    if app.state.storage_service is None:
        app.state.storage_service = create_storage_service(settings)

    app.state.ready = True

    yield

    # Shutdown
    logger.info("Shutting down FileIntake")
    app.state.ready = False


def error_response(
    status_code: int, error: str, message: str, details: dict[str, Any] | None = None
) -> JSONResponse:
    """JSON error body shared by every handler."""
    content: dict[str, Any] = {"success": False, "error": error, "message": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    """Map the exception tree to HTTP statuses.

    Validation problems are the client's and are returned verbatim.
    Storage failures are logged in full but answered with a generic
    message; inconsistencies keep their flags so operators can repair.
    """

    @app.exception_handler(FileValidationError)
    async def validation_error_handler(
        request: Request, exc: FileValidationError
    ) -> JSONResponse:
        return error_response(400, exc.__class__.__name__, exc.message, exc.details)

    @app.exception_handler(FileNotFoundInStoreError)
    async def not_found_handler(
        request: Request, exc: FileNotFoundInStoreError
    ) -> JSONResponse:
        logger.info("File not found", reason=exc.__class__.__name__, details=exc.details)
        return error_response(404, "File not found", "The requested file does not exist")

    @app.exception_handler(InconsistencyError)
    async def inconsistency_handler(
        request: Request, exc: InconsistencyError
    ) -> JSONResponse:
        logger.error("Storage inconsistency", error=exc.message, details=exc.details)
        return error_response(500, exc.__class__.__name__, exc.message, exc.details)

    @app.exception_handler(StorageError)
    async def storage_error_handler(
        request: Request, exc: StorageError
    ) -> JSONResponse:
        logger.error("Storage error", error=exc.message, details=exc.details)
        return error_response(
            500, "Storage error", "An error occurred while accessing file storage"
        )

    @app.exception_handler(FileIntakeError)
    async def fileintake_error_handler(
        request: Request, exc: FileIntakeError
    ) -> JSONResponse:
        logger.error("Application error", error=exc.message, details=exc.details)
        return error_response(400, exc.__class__.__name__, exc.message, exc.details)


def create_app(service: StorageService | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Storage service to use instead of one built from settings
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Single-file upload service with local or S3 storage",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.storage_service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router, tags=["Health"])
    app.include_router(files.router, prefix=settings.api_prefix, tags=["Files"])

    return app


# Application instance
app = create_app()


def run() -> None:
    """Run the application with uvicorn."""
    uvicorn.run(
        "fileintake.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
