"""Storage service: orchestrates validation, blobs and metadata records."""
from typing import Any

from fileintake.core.exceptions import (
    FileValidationError,
    OrphanedBlobError,
    PartialDeleteError,
    StorageError,
)
from fileintake.core.logging import get_logger
from fileintake.core.models import DeleteResult, FilePage, FileRecord, new_file_id
from fileintake.ingest.validator import FileValidator
from fileintake.storage.base import Download, StorageBackend

logger = get_logger(__name__)

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10


def clamp_positive(value: Any, default: int) -> int:
    """Coerce a paging parameter to a positive int, else the default."""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


class StorageService:
    """Single entry point for file operations.

    Holds the one backend chosen at startup and keeps each blob and its
    metadata record consistent: a record is written only after its blob,
    and any divergence between the two is raised as an
    ``InconsistencyError`` naming which half succeeded.

    Example:
        service = StorageService(LocalStorage())

        record = await service.upload(data, "photo.png", "image/png")
        download = await service.download(record.id)
    """

    def __init__(
        self,
        backend: StorageBackend,
        validator: FileValidator | None = None,
    ) -> None:
        self.backend = backend
        self.validator = validator or FileValidator()

    async def upload(
        self,
        data: bytes,
        filename: str,
        mime_type: str,
        declared_size: int | None = None,
    ) -> FileRecord:
        """Validate, store and record one file.

        Args:
            data: File bytes
            filename: Client-supplied filename
            mime_type: Declared MIME type
            declared_size: Size the client claimed, checked against the payload

        Returns:
            Record of the stored file

        Raises:
            FileValidationError: If the upload is rejected
            StorageError: If the blob could not be written
            OrphanedBlobError: If the blob was written but its record was not
        """
        size = len(data)
        if declared_size is not None and declared_size != size:
            raise FileValidationError(
                "Declared size does not match the uploaded content",
                details={"declared_size": declared_size, "size_bytes": size},
            )

        self.validator.validate_or_raise(mime_type, filename, size)

        file_id = new_file_id()
        record = await self.backend.store(file_id, data, filename, mime_type)

        try:
            await self.backend.save_record(record)
        except StorageError as e:
            logger.error(
                "Blob stored without metadata",
                file_id=file_id,
                backend=record.backend.value,
                locator=record.locator.model_dump(),
                error=e.message,
            )
            raise OrphanedBlobError(
                file_id,
                details={"backend": record.backend.value, "locator": record.locator.model_dump()},
            )

        logger.info(
            "File uploaded",
            file_id=file_id,
            filename=filename,
            size_bytes=size,
            backend=record.backend.value,
        )
        return record

    async def get(self, file_id: str) -> FileRecord:
        """Get a file record by identifier."""
        return await self.backend.load_record(file_id)

    async def list(self, page: Any = DEFAULT_PAGE, page_size: Any = DEFAULT_PAGE_SIZE) -> FilePage:
        """One page of the newest-first listing.

        Invalid or missing paging values fall back to the defaults.
        """
        page = clamp_positive(page, DEFAULT_PAGE)
        page_size = clamp_positive(page_size, DEFAULT_PAGE_SIZE)

        records = await self.backend.list_records()
        offset = (page - 1) * page_size

        return FilePage(
            items=records[offset : offset + page_size],
            total=len(records),
            page=page,
            page_size=page_size,
        )

    async def download(self, file_id: str) -> Download:
        """Stream (local) or redirect target (remote) for a file.

        Raises:
            RecordNotFoundError: If there is no record
            BlobNotFoundError: If the record's blob is missing
        """
        record = await self.backend.load_record(file_id)
        return await self.backend.retrieve(record)

    async def delete(self, file_id: str) -> DeleteResult:
        """Delete a blob and then its record.

        A blob that is already gone does not block removing the record.
        If the blob cannot be removed the record is kept so the delete
        can be retried.

        Raises:
            RecordNotFoundError: If there is no record
            StorageError: If the blob could not be removed (record kept)
            PartialDeleteError: If the blob was removed but the record was not
        """
        record = await self.backend.load_record(file_id)

        blob_deleted = await self.backend.remove(record)
        if not blob_deleted:
            logger.warning("Deleting record whose blob was already missing", file_id=file_id)

        try:
            await self.backend.delete_record(file_id)
        except StorageError as e:
            logger.error(
                "Blob deleted but metadata remains",
                file_id=file_id,
                blob_deleted=blob_deleted,
                error=e.message,
            )
            raise PartialDeleteError(file_id, blob_deleted=blob_deleted, record_deleted=False)

        logger.info("File deleted", file_id=file_id, blob_missing=not blob_deleted)

        return DeleteResult(
            id=file_id,
            original_name=record.original_name,
            blob_deleted=blob_deleted,
            blob_missing=not blob_deleted,
            record_deleted=True,
        )
