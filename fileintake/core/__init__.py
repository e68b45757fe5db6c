"""Core module - shared kernel for FileIntake."""
from fileintake.core.config import settings
from fileintake.core.exceptions import FileIntakeError

__all__ = ["settings", "FileIntakeError"]
