"""Local filesystem storage backend."""
import os
from collections.abc import AsyncIterator
from pathlib import Path

import aiofiles
import aiofiles.os

from fileintake.core.config import settings
from fileintake.core.exceptions import BlobNotFoundError, CorruptRecordError, StorageError
from fileintake.core.logging import get_logger
from fileintake.core.models import BackendKind, FileRecord, LocalLocator, utcnow
from fileintake.storage.base import Download, StorageBackend, safe_extension
from fileintake.storage.metadata import MetadataStore

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024


async def iter_file(path: Path, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Stream a file in chunks; the handle is opened on first iteration."""
    async with aiofiles.open(path, "rb") as f:
        while chunk := await f.read(chunk_size):
            yield chunk


class LocalStorage(StorageBackend):
    """Local filesystem storage backend.

    Stores blobs in a date-partitioned tree under the configured
    storage path, named by file id and never by client filename:

        <root>/2024/05/17/9b2f...c1.png

    Records are kept alongside in a ``MetadataStore``.

    Example:
        storage = LocalStorage()

        record = await storage.store(new_file_id(), data, "photo.png", "image/png")
        await storage.save_record(record)
    """

    kind = BackendKind.LOCAL

    def __init__(
        self,
        base_path: Path | None = None,
        metadata_store: MetadataStore | None = None,
    ) -> None:
        self.base_path = (base_path or settings.storage_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.metadata = metadata_store or MetadataStore(
            base_path=None if base_path is None else self.base_path / "metadata",
            storage_root=self.base_path,
        )

    def _resolve_path(self, relative_path: str) -> Path:
        """Resolve a record path, refusing anything outside the root."""
        path = (self.base_path / relative_path).resolve()
        if self.base_path not in path.parents:
            raise CorruptRecordError(
                "Record path escapes the storage root",
                details={"relative_path": relative_path},
            )
        return path

    def _record_path(self, record: FileRecord) -> Path:
        if not isinstance(record.locator, LocalLocator):
            raise CorruptRecordError(
                f"Record {record.id} is not a local file",
                details={"file_id": record.id, "backend": record.backend.value},
            )
        return self._resolve_path(record.locator.relative_path)

    async def store(
        self,
        file_id: str,
        data: bytes,
        original_name: str,
        mime_type: str,
    ) -> FileRecord:
        """Write a blob to ``YYYY/MM/DD/<id><ext>``."""
        uploaded_at = utcnow()
        stored_name = f"{file_id}{safe_extension(original_name)}"
        relative_path = f"{uploaded_at:%Y/%m/%d}/{stored_name}"
        path = self._resolve_path(relative_path)

        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to store file", file_id=file_id, path=str(path), error=str(e))
            if await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)
            raise StorageError(f"Failed to store {file_id}: {e}")

        logger.debug("File stored", file_id=file_id, path=str(path))

        return FileRecord(
            id=file_id,
            original_name=original_name,
            stored_name=stored_name,
            mime_type=mime_type,
            size=len(data),
            uploaded_at=uploaded_at,
            backend=self.kind,
            locator=LocalLocator(relative_path=relative_path),
        )

    async def retrieve(self, record: FileRecord) -> Download:
        """Check the blob exists and hand back a lazy byte stream."""
        path = self._record_path(record)

        if not await aiofiles.os.path.isfile(path):
            raise BlobNotFoundError(
                "The file exists in metadata but not on disk",
                details={"file_id": record.id},
            )

        return Download(record=record, stream=iter_file(path))

    async def remove(self, record: FileRecord) -> bool:
        """Delete a blob from the local filesystem."""
        path = self._record_path(record)

        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            logger.warning("File already absent", file_id=record.id, path=str(path))
            return False
        except OSError as e:
            logger.error("Failed to delete file", file_id=record.id, error=str(e))
            raise StorageError(f"Failed to delete {record.id}: {e}")

        logger.debug("File deleted", file_id=record.id, path=str(path))
        return True

    async def save_record(self, record: FileRecord) -> None:
        await self.metadata.save(record)

    async def load_record(self, file_id: str) -> FileRecord:
        return await self.metadata.load(file_id)

    async def delete_record(self, file_id: str) -> None:
        await self.metadata.delete(file_id)

    async def list_records(self) -> list[FileRecord]:
        return await self.metadata.list_all()

    async def check_health(self) -> bool:
        """Storage root is present and writable."""
        return os.access(self.base_path, os.R_OK | os.W_OK)
