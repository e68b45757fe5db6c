"""Abstract storage backend interface."""
import re
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from email.message import Message
from email.utils import collapse_rfc2231_value
from urllib.parse import quote

from fileintake.core.models import BackendKind, FileRecord

_SAFE_EXTENSION_RE = re.compile(r"^\.[a-z0-9]{1,16}$")


def safe_extension(original_name: str) -> str:
    """Extension to keep on a stored blob, or '' if it is not plain alphanumeric."""
    name = original_name.replace("\\", "/").rsplit("/", 1)[-1]
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        return ""
    candidate = f".{ext.lower()}"
    return candidate if _SAFE_EXTENSION_RE.match(candidate) else ""


def content_disposition(filename: str, disposition: str = "attachment") -> str:
    """Content-Disposition value with an ASCII fallback and RFC 5987 name."""
    fallback = (
        filename.encode("ascii", "replace").decode("ascii").replace('"', "").replace("\\", "")
    )
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def filename_from_disposition(value: str) -> str | None:
    """Filename carried by a Content-Disposition header, if any.

    The RFC 2231 ``filename*`` parameter wins over the plain one.
    """
    message = Message()
    message["content-disposition"] = value

    plain: str | None = None
    for key, param in (message.get_params(header="content-disposition") or [])[1:]:
        if key.lower() != "filename":
            continue
        if isinstance(param, tuple):
            return collapse_rfc2231_value(param) or None
        plain = plain or param
    return plain or None


@dataclass
class Download:
    """What a caller needs to serve a stored file.

    Exactly one of ``stream`` (local bytes, opened lazily on first
    iteration) or ``redirect_url`` (remote object) is set.
    """

    record: FileRecord
    stream: AsyncIterator[bytes] | None = None
    redirect_url: str | None = None

    @property
    def is_redirect(self) -> bool:
        return self.redirect_url is not None


class StorageBackend(ABC):
    """Abstract base class for storage backends.

    Provides one contract for blobs and their metadata records so the
    storage service never branches on which backend is active.
    """

    kind: BackendKind

    @abstractmethod
    async def store(
        self,
        file_id: str,
        data: bytes,
        original_name: str,
        mime_type: str,
    ) -> FileRecord:
        """Persist a blob under an already generated identifier.

        Args:
            file_id: Identifier fixed before the write begins
            data: File bytes
            original_name: Client-supplied filename (display only)
            mime_type: Validated MIME type

        Returns:
            Fully populated record for the stored blob
        """
        ...

    @abstractmethod
    async def retrieve(self, record: FileRecord) -> Download:
        """Prepare a stored blob for serving.

        Raises:
            BlobNotFoundError: If the record points at a missing blob
        """
        ...

    @abstractmethod
    async def remove(self, record: FileRecord) -> bool:
        """Delete a blob.

        Returns:
            True if removed, False if it was already absent

        Raises:
            StorageError: On a real backend failure
        """
        ...

    @abstractmethod
    async def save_record(self, record: FileRecord) -> None:
        """Persist the metadata record of a stored blob."""
        ...

    @abstractmethod
    async def load_record(self, file_id: str) -> FileRecord:
        """Load a metadata record.

        Raises:
            RecordNotFoundError: If no record exists for the identifier
        """
        ...

    @abstractmethod
    async def delete_record(self, file_id: str) -> None:
        """Delete a metadata record."""
        ...

    @abstractmethod
    async def list_records(self) -> list[FileRecord]:
        """All records, newest first."""
        ...

    @abstractmethod
    async def check_health(self) -> bool:
        """Whether the backend is reachable."""
        ...
