"""Ingestion module - Upload validation."""
from fileintake.ingest.validator import FileValidator, ValidationResult

__all__ = ["FileValidator", "ValidationResult"]
