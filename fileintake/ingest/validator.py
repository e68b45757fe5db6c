"""Upload validation against the configured allow-lists and size ceiling."""
from dataclasses import dataclass
from pathlib import PurePath

from fileintake.core.config import settings
from fileintake.core.exceptions import FileTooLargeError, UnsupportedFileTypeError


def _normalize_extension(extension: str) -> str:
    extension = extension.strip().lower()
    if extension and not extension.startswith("."):
        extension = f".{extension}"
    return extension


def file_extension(filename: str) -> str:
    """Lowercase extension of a filename, including the leading dot."""
    # Clients on Windows send backslash separators
    name = filename.replace("\\", "/")
    return PurePath(name).suffix.lower()


@dataclass
class ValidationResult:
    """Result of upload validation."""

    valid: bool
    error: str | None = None


class FileValidator:
    """Validates a declared upload before anything touches storage.

    A file passes only if its size is within the ceiling and both the
    declared MIME type and the filename extension are allow-listed, so
    a spoofed MIME type cannot smuggle in a disallowed extension and
    vice versa.

    Example:
        validator = FileValidator()
        result = validator.validate("image/png", "photo.png", 1024)

        if not result.valid:
            print(result.error)
    """

    def __init__(
        self,
        max_size: int | None = None,
        allowed_mime_types: list[str] | None = None,
        allowed_extensions: list[str] | None = None,
    ) -> None:
        self.max_size = settings.max_file_size if max_size is None else max_size
        if allowed_mime_types is None:
            allowed_mime_types = settings.allowed_mime_types
        if allowed_extensions is None:
            allowed_extensions = settings.allowed_extensions

        self.allowed_mime_types = {mime.strip().lower() for mime in allowed_mime_types}
        self.allowed_extensions = {_normalize_extension(ext) for ext in allowed_extensions}

    def validate(self, mime_type: str, filename: str, size: int) -> ValidationResult:
        """Validate a declared upload.

        Args:
            mime_type: Declared content type
            filename: Client-supplied filename
            size: Payload size in bytes

        Returns:
            ValidationResult with the violated constraint if invalid
        """
        try:
            self.validate_or_raise(mime_type, filename, size)
        except (FileTooLargeError, UnsupportedFileTypeError) as e:
            return ValidationResult(valid=False, error=e.message)
        return ValidationResult(valid=True)

    def validate_or_raise(self, mime_type: str, filename: str, size: int) -> None:
        """Validate a declared upload and raise if it is rejected.

        Raises:
            FileTooLargeError: If size exceeds the ceiling
            UnsupportedFileTypeError: If MIME type or extension is not allowed
        """
        if size < 0:
            raise FileTooLargeError(
                "Invalid file size",
                details={"size_bytes": size},
            )

        if size > self.max_size:
            raise FileTooLargeError(
                f"File size must not exceed {self.max_size} bytes",
                details={"size_bytes": size, "max_bytes": self.max_size},
            )

        mime = (mime_type or "").strip().lower()
        extension = file_extension(filename or "")

        if mime not in self.allowed_mime_types or extension not in self.allowed_extensions:
            raise UnsupportedFileTypeError(
                "Invalid file type. Allowed types: "
                + ", ".join(sorted(self.allowed_mime_types)),
                details={
                    "mime_type": mime_type,
                    "extension": extension,
                    "mime_type_allowed": mime in self.allowed_mime_types,
                    "extension_allowed": extension in self.allowed_extensions,
                },
            )
