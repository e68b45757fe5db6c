"""Backend selection, done once per process from configuration."""
from fileintake.core.config import Settings, settings as default_settings
from fileintake.core.logging import get_logger
from fileintake.ingest.validator import FileValidator
from fileintake.storage.base import StorageBackend
from fileintake.storage.local import LocalStorage
from fileintake.storage.metadata import MetadataStore
from fileintake.storage.remote import S3Storage
from fileintake.storage.service import StorageService

logger = get_logger(__name__)


def create_backend(settings: Settings | None = None) -> StorageBackend:
    """Build the configured storage backend."""
    settings = settings or default_settings

    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("S3_BUCKET must be set when STORAGE_BACKEND=s3")
        logger.info("Using S3 storage", bucket=settings.s3_bucket, folder=settings.s3_folder)
        return S3Storage(settings.s3_config())

    root = settings.storage_path.resolve()
    logger.info("Using local storage", path=str(root))
    return LocalStorage(
        base_path=root,
        metadata_store=MetadataStore(
            base_path=settings.resolved_metadata_path,
            storage_root=root,
        ),
    )


def create_storage_service(settings: Settings | None = None) -> StorageService:
    """Build the storage service around the configured backend."""
    settings = settings or default_settings
    validator = FileValidator(
        max_size=settings.max_file_size,
        allowed_mime_types=settings.allowed_mime_types,
        allowed_extensions=settings.allowed_extensions,
    )
    return StorageService(create_backend(settings), validator=validator)
