"""Health check endpoints."""
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from fileintake.core.config import settings
from fileintake.core.logging import get_logger
from fileintake.core.models import utcnow

logger = get_logger(__name__)

router = APIRouter()


class HealthResponse(BaseModel):
    """Liveness summary."""

    status: str
    version: str
    environment: str
    storage_backend: str
    timestamp: datetime


class ReadinessResponse(BaseModel):
    """Readiness with one flag per checked component."""

    ready: bool
    checks: dict[str, bool]
    timestamp: datetime


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Always OK while the process is serving."""
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment.value,
        storage_backend=settings.storage_backend,
        timestamp=utcnow(),
    )


@router.get("/live")
async def liveness() -> dict[str, str]:
    return {"status": "alive"}


@router.get("/ready", response_model=ReadinessResponse)
async def readiness(request: Request) -> ReadinessResponse | JSONResponse:
    """Ready once startup finished and the storage backend answers.

    For local storage that means a writable root; for S3, a reachable
    bucket. Not ready is reported as 503.
    """
    service = getattr(request.app.state, "storage_service", None)
    checks = {
        "app": bool(getattr(request.app.state, "ready", False)),
        "storage": service is not None and await service.backend.check_health(),
    }
    result = ReadinessResponse(ready=all(checks.values()), checks=checks, timestamp=utcnow())

    if not result.ready:
        logger.warning("Not ready", checks=checks)
        return JSONResponse(status_code=503, content=result.model_dump(mode="json"))
    return result


@router.get("/info")
async def info() -> dict[str, Any]:
    """Limits a client needs before uploading."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment.value,
        "features": {
            "storage_backend": settings.storage_backend,
            "max_file_size": settings.max_file_size,
            "allowed_mime_types": settings.allowed_mime_types,
            "allowed_extensions": settings.allowed_extensions,
        },
    }
