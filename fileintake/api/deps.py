"""Dependency injection for FastAPI routes."""
from typing import Annotated

from fastapi import Depends, Request

from fileintake.storage.service import StorageService


def get_storage_service(request: Request) -> StorageService:
    """Get the storage service built at startup."""
    service = getattr(request.app.state, "storage_service", None)
    if service is None:
        raise RuntimeError("Storage service not initialized")
    return service


StorageServiceDep = Annotated[StorageService, Depends(get_storage_service)]
