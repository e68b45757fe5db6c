"""Storage module - File and metadata storage abstraction."""
from fileintake.storage.base import Download, StorageBackend
from fileintake.storage.local import LocalStorage
from fileintake.storage.metadata import MetadataStore
from fileintake.storage.remote import S3Storage
from fileintake.storage.service import StorageService

__all__ = [
    "Download",
    "StorageBackend",
    "LocalStorage",
    "MetadataStore",
    "S3Storage",
    "StorageService",
]
