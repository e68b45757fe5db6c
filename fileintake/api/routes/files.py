"""File upload, listing, download and deletion endpoints."""
from datetime import datetime

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import RedirectResponse, StreamingResponse
from pydantic import BaseModel

from fileintake.api.deps import StorageServiceDep
from fileintake.core.config import settings
from fileintake.core.exceptions import FileTooLargeError
from fileintake.core.logging import get_logger
from fileintake.core.models import FileRecord, RemoteLocator
from fileintake.storage.base import content_disposition

logger = get_logger(__name__)

router = APIRouter()

READ_CHUNK_SIZE = 1024 * 1024


class FileInfo(BaseModel):
    """Public view of a file record (no storage paths)."""

    id: str
    original_name: str
    stored_name: str
    mime_type: str
    size: int
    uploaded_at: datetime
    download_url: str


class UploadResponse(BaseModel):
    success: bool = True
    message: str
    file: FileInfo


class Pagination(BaseModel):
    page: int
    limit: int
    total_files: int
    total_pages: int
    has_next: bool
    has_prev: bool


class FileListResponse(BaseModel):
    success: bool = True
    files: list[FileInfo]
    pagination: Pagination


class FileInfoResponse(BaseModel):
    success: bool = True
    file: FileInfo


class DeletedFile(BaseModel):
    id: str
    original_name: str


class DeleteResponse(BaseModel):
    success: bool = True
    message: str
    deleted_file: DeletedFile


def to_file_info(record: FileRecord) -> FileInfo:
    """Public view of a record; remote files link straight to the object."""
    if isinstance(record.locator, RemoteLocator):
        download_url = record.locator.url
    else:
        download_url = f"{settings.api_prefix}/files/{record.id}"

    return FileInfo(
        id=record.id,
        original_name=record.original_name,
        stored_name=record.stored_name,
        mime_type=record.mime_type,
        size=record.size,
        uploaded_at=record.uploaded_at,
        download_url=download_url,
    )


@router.post("/upload", response_model=UploadResponse, status_code=201)
async def upload_file(
    service: StorageServiceDep,
    file: UploadFile = File(...),
) -> UploadResponse:
    """Upload a single file.

    The payload is read in chunks and rejected as soon as it passes the
    size ceiling; everything else is validated by the storage service.
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="Please select a file to upload")

    max_size = service.validator.max_size
    chunks: list[bytes] = []
    received = 0

    while chunk := await file.read(READ_CHUNK_SIZE):
        received += len(chunk)
        if received > max_size:
            raise FileTooLargeError(
                f"File size must not exceed {max_size} bytes",
                details={"max_bytes": max_size},
            )
        chunks.append(chunk)

    record = await service.upload(
        b"".join(chunks),
        file.filename,
        file.content_type or "",
        declared_size=file.size,
    )

    return UploadResponse(message="File uploaded successfully", file=to_file_info(record))


@router.get("/files", response_model=FileListResponse)
async def list_files(
    service: StorageServiceDep,
    page: str | None = None,
    limit: str | None = None,
) -> FileListResponse:
    """List uploaded files, newest first.

    Missing or invalid ``page``/``limit`` fall back to 1 and 10.
    """
    result = await service.list(page, limit)

    return FileListResponse(
        files=[to_file_info(record) for record in result.items],
        pagination=Pagination(
            page=result.page,
            limit=result.page_size,
            total_files=result.total,
            total_pages=result.total_pages,
            has_next=result.has_next,
            has_prev=result.has_prev,
        ),
    )


@router.get("/files/{file_id}", response_model=None)
async def download_file(
    file_id: str,
    service: StorageServiceDep,
) -> StreamingResponse | RedirectResponse:
    """Stream a local file, or redirect to the object store URL."""
    download = await service.download(file_id)

    if download.is_redirect:
        return RedirectResponse(download.redirect_url, status_code=302)

    record = download.record
    return StreamingResponse(
        download.stream,
        media_type=record.mime_type,
        headers={
            "Content-Disposition": content_disposition(record.original_name),
            "Content-Length": str(record.size),
        },
    )


@router.get("/files/{file_id}/info", response_model=FileInfoResponse)
async def get_file_info(
    file_id: str,
    service: StorageServiceDep,
) -> FileInfoResponse:
    """File metadata without downloading."""
    record = await service.get(file_id)
    return FileInfoResponse(file=to_file_info(record))


@router.delete("/files/{file_id}", response_model=DeleteResponse)
async def delete_file(
    file_id: str,
    service: StorageServiceDep,
) -> DeleteResponse:
    """Delete a file and its metadata."""
    result = await service.delete(file_id)

    return DeleteResponse(
        message="File deleted successfully",
        deleted_file=DeletedFile(id=result.id, original_name=result.original_name),
    )
