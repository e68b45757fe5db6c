"""Domain models for FileIntake."""
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator


class BackendKind(str, Enum):
    """Storage destination owning a file."""

    LOCAL = "local"
    S3 = "s3"


def new_file_id() -> str:
    """Generate a fresh, collision-resistant file identifier."""
    return str(uuid4())


def is_file_id(value: str) -> bool:
    """Check whether a value could have been issued by ``new_file_id``."""
    try:
        return str(UUID(value)) == value.lower()
    except (ValueError, AttributeError, TypeError):
        return False


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


# ============ File Records ============


class LocalLocator(BaseModel):
    """Blob location under the local storage root."""

    kind: Literal["local"] = "local"
    relative_path: str


class RemoteLocator(BaseModel):
    """Blob location in the object store."""

    kind: Literal["s3"] = "s3"
    url: str
    key: str


Locator = Annotated[LocalLocator | RemoteLocator, Field(discriminator="kind")]


class FileRecord(BaseModel):
    """Metadata describing one uploaded file."""

    id: str
    original_name: str
    stored_name: str
    mime_type: str
    size: int = Field(ge=0)
    uploaded_at: datetime
    backend: BackendKind
    locator: Locator

    @field_validator("uploaded_at")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC so records always sort together."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


# ============ Service Results ============


class FilePage(BaseModel):
    """One page of the newest-first file listing."""

    items: list[FileRecord]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


class DeleteResult(BaseModel):
    """Outcome of a completed delete."""

    id: str
    original_name: str
    blob_deleted: bool
    blob_missing: bool = False
    record_deleted: bool = True
