"""Metadata storage: one JSON document per file record."""
import re
from datetime import datetime
from pathlib import Path, PurePosixPath

import aiofiles
import aiofiles.os
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from fileintake.core.config import settings
from fileintake.core.exceptions import CorruptRecordError, RecordNotFoundError, StorageError
from fileintake.core.logging import get_logger
from fileintake.core.models import (
    BackendKind,
    FileRecord,
    LocalLocator,
    RemoteLocator,
    is_file_id,
)

logger = get_logger(__name__)

_DATE_PARTS = (re.compile(r"^\d{4}$"), re.compile(r"^\d{2}$"), re.compile(r"^\d{2}$"))


class StoredRecord(BaseModel):
    """On-disk shape of a file record.

    Older documents carry an absolute ``path`` and no ``relativePath``;
    both are accepted here and collapsed into one locator by
    ``to_record`` so nothing past this module sees the legacy shape.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    original_name: str = Field(alias="originalName")
    file_name: str | None = Field(default=None, alias="fileName")
    mime_type: str = Field(alias="mimeType")
    size: int
    upload_date: datetime = Field(alias="uploadDate")
    relative_path: str | None = Field(default=None, alias="relativePath")
    path: str | None = None
    storage_type: str | None = Field(default=None, alias="storageType")
    url: str | None = None
    public_id: str | None = Field(default=None, alias="publicId")

    @classmethod
    def from_record(cls, record: FileRecord) -> "StoredRecord":
        """Build the persisted shape of a record (never the legacy path)."""
        locator = record.locator
        return cls(
            id=record.id,
            original_name=record.original_name,
            file_name=record.stored_name,
            mime_type=record.mime_type,
            size=record.size,
            upload_date=record.uploaded_at,
            storage_type=record.backend.value,
            relative_path=locator.relative_path if isinstance(locator, LocalLocator) else None,
            url=locator.url if isinstance(locator, RemoteLocator) else None,
            public_id=locator.key if isinstance(locator, RemoteLocator) else None,
        )

    def to_record(self, root: Path) -> FileRecord:
        """Normalise into the canonical in-memory record.

        Raises:
            CorruptRecordError: If the document has no usable locator
        """
        backend = BackendKind(self.storage_type or BackendKind.LOCAL.value)

        if backend == BackendKind.S3:
            if not self.url or not self.public_id:
                raise CorruptRecordError(
                    f"Record {self.id} has no object location",
                    details={"file_id": self.id},
                )
            locator: LocalLocator | RemoteLocator = RemoteLocator(
                url=self.url, key=self.public_id
            )
            stored_name = self.file_name or PurePosixPath(self.public_id).name
        else:
            relative = self.relative_path or _legacy_relative_path(self.path, root)
            if not relative or not _is_contained(relative):
                raise CorruptRecordError(
                    f"Record {self.id} has no path inside the storage root",
                    details={"file_id": self.id},
                )
            locator = LocalLocator(relative_path=relative)
            stored_name = self.file_name or PurePosixPath(relative).name

        return FileRecord(
            id=self.id,
            original_name=self.original_name,
            stored_name=stored_name,
            mime_type=self.mime_type,
            size=self.size,
            uploaded_at=self.upload_date,
            backend=backend,
            locator=locator,
        )


def _is_contained(relative: str) -> bool:
    path = PurePosixPath(relative)
    return bool(path.parts) and not path.is_absolute() and ".." not in path.parts


def _legacy_relative_path(path: str | None, root: Path) -> str | None:
    """Recover a root-relative path from a legacy absolute path."""
    if not path:
        return None

    root = root.resolve()
    resolved = Path(path).resolve()
    if root in resolved.parents:
        return resolved.relative_to(root).as_posix()

    # Root moved since the record was written: keep the YYYY/MM/DD/<name> tail
    parts = PurePosixPath(path.replace("\\", "/")).parts
    if len(parts) >= 4 and all(
        pattern.match(part) for pattern, part in zip(_DATE_PARTS, parts[-4:-1])
    ):
        return "/".join(parts[-4:])

    return None


class MetadataStore:
    """File-per-record metadata storage.

    Each record lives in ``<base_path>/<id>.json``; there is no shared
    index, so one damaged document never affects the others.

    Example:
        store = MetadataStore()

        await store.save(record)
        record = await store.load(record.id)
    """

    def __init__(self, base_path: Path | None = None, storage_root: Path | None = None) -> None:
        self.base_path = base_path or settings.resolved_metadata_path
        self.storage_root = storage_root or settings.storage_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _record_path(self, file_id: str) -> Path:
        if not is_file_id(file_id):
            raise RecordNotFoundError(f"File not found: {file_id}", details={"file_id": file_id})
        return self.base_path / f"{file_id}.json"

    async def save(self, record: FileRecord) -> None:
        """Write a record, replacing any previous version atomically."""
        path = self._record_path(record.id)
        tmp_path = path.with_name(f"{path.name}.tmp")
        document = StoredRecord.from_record(record).model_dump_json(
            by_alias=True, exclude_none=True, indent=2
        )

        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(document)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as e:
            logger.error("Failed to save metadata", file_id=record.id, error=str(e))
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)
            raise StorageError(f"Failed to save metadata for {record.id}: {e}")

        logger.debug("Metadata saved", file_id=record.id)

    async def load(self, file_id: str) -> FileRecord:
        """Load a record by identifier."""
        path = self._record_path(file_id)

        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError:
            raise RecordNotFoundError(f"File not found: {file_id}", details={"file_id": file_id})
        except UnicodeDecodeError as e:
            raise CorruptRecordError(
                f"Metadata for {file_id} is not valid UTF-8",
                details={"file_id": file_id, "position": e.start},
            )
        except OSError as e:
            raise StorageError(f"Failed to read metadata for {file_id}: {e}")

        return self._parse(file_id, content)

    def _parse(self, file_id: str, content: str) -> FileRecord:
        try:
            stored = StoredRecord.model_validate_json(content)
        except ValidationError as e:
            raise CorruptRecordError(
                f"Unreadable metadata for {file_id}",
                details={"file_id": file_id, "errors": e.error_count()},
            )

        if stored.id != file_id:
            raise CorruptRecordError(
                f"Metadata for {file_id} names a different id",
                details={"file_id": file_id, "stored_id": stored.id},
            )

        try:
            return stored.to_record(self.storage_root)
        except ValueError as e:
            # Unknown storageType or field values a FileRecord rejects
            raise CorruptRecordError(
                f"Invalid metadata for {file_id}: {e}",
                details={"file_id": file_id},
            )

    async def delete(self, file_id: str) -> None:
        """Delete a record."""
        path = self._record_path(file_id)

        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            raise RecordNotFoundError(f"File not found: {file_id}", details={"file_id": file_id})
        except OSError as e:
            logger.error("Failed to delete metadata", file_id=file_id, error=str(e))
            raise StorageError(f"Failed to delete metadata for {file_id}: {e}")

        logger.debug("Metadata deleted", file_id=file_id)

    async def exists(self, file_id: str) -> bool:
        """Check if a record exists."""
        if not is_file_id(file_id):
            return False
        return await aiofiles.os.path.exists(self.base_path / f"{file_id}.json")

    async def list_all(self) -> list[FileRecord]:
        """All readable records, newest first.

        Unreadable documents are logged and skipped.
        """
        records: list[FileRecord] = []

        for name in await aiofiles.os.listdir(self.base_path):
            if not name.endswith(".json"):
                continue

            file_id = name[: -len(".json")]
            try:
                records.append(await self.load(file_id))
            except (RecordNotFoundError, StorageError) as e:
                logger.warning("Skipping unreadable metadata", file=name, error=str(e))

        records.sort(key=lambda r: r.uploaded_at, reverse=True)
        return records
