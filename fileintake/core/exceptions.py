"""Domain exceptions for FileIntake."""
from typing import Any


class FileIntakeError(Exception):
    """Base exception for all FileIntake errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# Validation errors
class FileValidationError(FileIntakeError):
    """Upload rejected before any I/O."""

    pass


class FileTooLargeError(FileValidationError):
    """Payload exceeds the configured size ceiling."""

    pass


class UnsupportedFileTypeError(FileValidationError):
    """MIME type or extension not on the allow-list."""

    pass


# Lookup errors
class FileNotFoundInStoreError(FileIntakeError):
    """Requested file does not exist."""

    pass


class RecordNotFoundError(FileNotFoundInStoreError):
    """No metadata record for the identifier."""

    pass


class BlobNotFoundError(FileNotFoundInStoreError):
    """Metadata record exists but the stored bytes are gone."""

    pass


# Storage errors
class StorageError(FileIntakeError):
    """Backend I/O failure (disk, network, provider)."""

    pass


class CorruptRecordError(StorageError):
    """Stored metadata record could not be read or normalised."""

    pass


# Consistency errors
class InconsistencyError(FileIntakeError):
    """Blob and metadata record have diverged."""

    pass


class OrphanedBlobError(InconsistencyError):
    """Blob stored but its metadata record could not be persisted."""

    def __init__(self, file_id: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message="File stored but its metadata could not be saved",
            details={"file_id": file_id, **(details or {})},
        )
        self.file_id = file_id


class PartialDeleteError(InconsistencyError):
    """Only one half of a delete succeeded."""

    def __init__(self, file_id: str, blob_deleted: bool, record_deleted: bool) -> None:
        super().__init__(
            message="File was only partially deleted",
            details={
                "file_id": file_id,
                "blob_deleted": blob_deleted,
                "record_deleted": record_deleted,
            },
        )
        self.file_id = file_id
        self.blob_deleted = blob_deleted
        self.record_deleted = record_deleted
