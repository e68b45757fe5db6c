"""S3-compatible object storage backend."""
import asyncio
import mimetypes
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import quote, unquote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from fileintake.core.config import S3Config
from fileintake.core.exceptions import (
    BlobNotFoundError,
    CorruptRecordError,
    RecordNotFoundError,
    StorageError,
)
from fileintake.core.logging import get_logger
from fileintake.core.models import BackendKind, FileRecord, RemoteLocator, is_file_id, utcnow
from fileintake.storage.base import (
    Download,
    StorageBackend,
    content_disposition,
    filename_from_disposition,
    safe_extension,
)

logger = get_logger(__name__)

# User metadata keys; S3 returns them lowercased
NAME_METADATA = "original-filename"
LEGACY_NAME_METADATA = "original_filename"
UPLOADED_AT_METADATA = "uploaded-at"
NAME_TAG = "original_name"

_MISSING_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}


def _name_from_head(metadata: dict[str, str], disposition: str | None) -> str | None:
    """Original filename from object metadata, then Content-Disposition."""
    for field in (NAME_METADATA, LEGACY_NAME_METADATA):
        if metadata.get(field):
            return unquote(metadata[field])
    if disposition:
        return filename_from_disposition(disposition)
    return None


def _name_from_tags(tag_set: list[dict[str, str]]) -> str | None:
    for tag in tag_set:
        if tag.get("Key") == NAME_TAG and tag.get("Value"):
            return tag["Value"]
    return None


class S3Storage(StorageBackend):
    """S3-compatible object storage backend.

    Blobs are stored as ``<folder>/<id><ext>``. The bucket is the source
    of truth: records are rebuilt from live listings on every call,
    never cached, and the original filename travels with the object as
    user metadata.

    All boto3 calls run in a worker thread bounded by ``config.timeout``;
    botocore retries are disabled so failures surface to the caller.

    Example:
        storage = S3Storage(S3Config(bucket="uploads"))

        record = await storage.store(new_file_id(), data, "report.pdf", "application/pdf")
        download = await storage.retrieve(record)  # download.redirect_url
    """

    kind = BackendKind.S3

    def __init__(self, config: S3Config, client: Any | None = None) -> None:
        self.config = config
        self.folder = config.folder.strip("/")
        self.client = client or boto3.client(
            "s3",
            region_name=config.region,
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            config=Config(
                connect_timeout=config.timeout,
                read_timeout=config.timeout,
                retries={"mode": "standard", "total_max_attempts": 1},
            ),
        )

    def _key(self, name: str) -> str:
        return f"{self.folder}/{name}" if self.folder else name

    def object_url(self, key: str) -> str:
        """Durable URL of an object."""
        quoted = quote(key)
        if self.config.public_base_url:
            return f"{self.config.public_base_url.rstrip('/')}/{quoted}"
        if self.config.endpoint_url:
            return f"{self.config.endpoint_url.rstrip('/')}/{self.config.bucket}/{quoted}"
        return f"https://{self.config.bucket}.s3.{self.config.region}.amazonaws.com/{quoted}"

    async def _call(self, operation: str, **kwargs: Any) -> dict[str, Any]:
        """Run one boto3 operation off the event loop."""
        method = getattr(self.client, operation)
        key = kwargs.get("Key")

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(method, **kwargs),
                timeout=self.config.timeout,
            )
        except asyncio.TimeoutError:
            logger.error("S3 call timed out", operation=operation, key=key)
            raise StorageError(f"S3 {operation} timed out")
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_CODES:
                raise BlobNotFoundError(f"Object not found: {key}", details={"key": key})
            logger.error("S3 call failed", operation=operation, key=key, error=str(e))
            raise StorageError(f"S3 {operation} failed: {code}")
        except BotoCoreError as e:
            logger.error("S3 call failed", operation=operation, key=key, error=str(e))
            raise StorageError(f"S3 {operation} failed: {e}")

    async def store(
        self,
        file_id: str,
        data: bytes,
        original_name: str,
        mime_type: str,
    ) -> FileRecord:
        """Upload a blob and return its record."""
        uploaded_at = utcnow()
        stored_name = f"{file_id}{safe_extension(original_name)}"
        key = self._key(stored_name)
        content_type = (
            mime_type
            or mimetypes.guess_type(original_name)[0]
            or "application/octet-stream"
        )

        await self._call(
            "put_object",
            Bucket=self.config.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            ContentDisposition=content_disposition(original_name),
            Metadata={
                NAME_METADATA: quote(original_name),
                UPLOADED_AT_METADATA: uploaded_at.isoformat(),
            },
        )

        logger.info("Object uploaded", file_id=file_id, key=key, bucket=self.config.bucket)

        return FileRecord(
            id=file_id,
            original_name=original_name,
            stored_name=stored_name,
            mime_type=content_type,
            size=len(data),
            uploaded_at=uploaded_at,
            backend=self.kind,
            locator=RemoteLocator(url=self.object_url(key), key=key),
        )

    async def retrieve(self, record: FileRecord) -> Download:
        """Point the caller at the object URL."""
        if not isinstance(record.locator, RemoteLocator):
            raise CorruptRecordError(
                f"Record {record.id} is not a remote object",
                details={"file_id": record.id, "backend": record.backend.value},
            )
        return Download(record=record, redirect_url=record.locator.url)

    async def remove(self, record: FileRecord) -> bool:
        """Delete an object by key. Deleting a missing key succeeds."""
        if not isinstance(record.locator, RemoteLocator):
            raise CorruptRecordError(
                f"Record {record.id} is not a remote object",
                details={"file_id": record.id, "backend": record.backend.value},
            )

        await self._call("delete_object", Bucket=self.config.bucket, Key=record.locator.key)
        logger.info("Object deleted", file_id=record.id, key=record.locator.key)
        return True

    async def save_record(self, record: FileRecord) -> None:
        # Metadata is written with the object itself
        logger.debug("Record carried by object", file_id=record.id)

    async def load_record(self, file_id: str) -> FileRecord:
        """Rebuild a record from the object named by ``file_id``."""
        if not is_file_id(file_id):
            raise RecordNotFoundError(f"File not found: {file_id}", details={"file_id": file_id})

        keys = [
            obj["Key"]
            for obj in await self._list_objects(self._key(file_id))
            if self._id_of(obj["Key"]) == file_id
        ]
        if not keys:
            raise RecordNotFoundError(f"File not found: {file_id}", details={"file_id": file_id})

        try:
            return await self._load_object(keys[0])
        except BlobNotFoundError:
            raise RecordNotFoundError(f"File not found: {file_id}", details={"file_id": file_id})

    async def delete_record(self, file_id: str) -> None:
        # Removing the object removed its metadata
        logger.debug("Record removed with object", file_id=file_id)

    async def list_records(self) -> list[FileRecord]:
        """The newest ``max_list_results`` records under the folder, newest first."""
        prefix = f"{self.folder}/" if self.folder else ""
        objects = [obj for obj in await self._list_objects(prefix) if self._id_of(obj["Key"])]

        # Listings come back in key order; the cap must keep the newest objects
        objects.sort(key=lambda obj: (obj["LastModified"], obj["Key"]), reverse=True)
        keys = [obj["Key"] for obj in objects[: self.config.max_list_results]]

        results = await asyncio.gather(
            *(self._load_object(key) for key in keys),
            return_exceptions=True,
        )

        records: list[FileRecord] = []
        for key, result in zip(keys, results):
            if isinstance(result, BlobNotFoundError):
                logger.warning("Object vanished during listing", key=key)
                continue
            if isinstance(result, BaseException):
                raise result
            records.append(result)

        records.sort(key=lambda r: r.uploaded_at, reverse=True)
        return records

    async def check_health(self) -> bool:
        """Bucket is reachable with the configured credentials."""
        try:
            await self._call("head_bucket", Bucket=self.config.bucket)
        except (StorageError, BlobNotFoundError):
            return False
        return True

    def _id_of(self, key: str) -> str | None:
        """File id encoded in a key directly under the folder, if any."""
        path = PurePosixPath(key)
        if self._key(path.name) != key:
            return None
        file_id = path.name.split(".", 1)[0]
        return file_id if is_file_id(file_id) else None

    async def _list_objects(self, prefix: str) -> list[dict[str, Any]]:
        """Every object summary under a prefix, across all pages."""
        objects: list[dict[str, Any]] = []
        token: str | None = None

        while True:
            kwargs: dict[str, Any] = {"Bucket": self.config.bucket, "Prefix": prefix}
            if token:
                kwargs["ContinuationToken"] = token

            response = await self._call("list_objects_v2", **kwargs)
            objects.extend(response.get("Contents", []))

            if not response.get("IsTruncated"):
                return objects
            token = response.get("NextContinuationToken")

    async def _load_object(self, key: str) -> FileRecord:
        head = await self._call("head_object", Bucket=self.config.bucket, Key=key)
        metadata = head.get("Metadata") or {}
        name = PurePosixPath(key).name

        uploaded_at = head.get("LastModified") or utcnow()
        if metadata.get(UPLOADED_AT_METADATA):
            try:
                uploaded_at = datetime.fromisoformat(metadata[UPLOADED_AT_METADATA])
            except ValueError:
                logger.warning("Bad upload timestamp on object", key=key)

        return FileRecord(
            id=name.split(".", 1)[0],
            original_name=await self._original_name(key, head),
            stored_name=name,
            mime_type=head.get("ContentType") or "application/octet-stream",
            size=head.get("ContentLength", 0),
            uploaded_at=uploaded_at,
            backend=self.kind,
            locator=RemoteLocator(url=self.object_url(key), key=key),
        )

    async def _original_name(self, key: str, head: dict[str, Any]) -> str:
        """Display name, resolved in a fixed order.

        Custom metadata, legacy metadata, Content-Disposition filename,
        ``original_name`` tag, then the key's basename. Tags are only
        fetched when the first three are absent.
        """
        name = _name_from_head(head.get("Metadata") or {}, head.get("ContentDisposition"))
        if name:
            return name

        response = await self._call("get_object_tagging", Bucket=self.config.bucket, Key=key)
        return _name_from_tags(response.get("TagSet", [])) or PurePosixPath(key).name
