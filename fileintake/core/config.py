"""Application configuration via Pydantic Settings."""
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class S3Config(BaseModel):
    """Connection and layout settings for the S3 backend.

    Passed to ``S3Storage`` explicitly so tests can build adapters
    against fake credentials or a local endpoint.
    """

    bucket: str
    folder: str = "file-upload-service"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    public_base_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None
    timeout: float = 30.0
    max_list_results: int = 500


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "FileIntake"
    app_version: str = "0.1.0"
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    api_prefix: str = "/api"
    cors_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000"]
    )

    # Storage
    storage_backend: Literal["local", "s3"] = "local"
    storage_path: Path = Field(default=Path("./uploads"))
    metadata_path: Path | None = None
    storage_timeout: float = 30.0  # seconds per backend call

    # Validation
    max_file_size: int = 50 * 1024 * 1024  # bytes
    allowed_mime_types: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            "image/jpeg",
            "image/png",
            "image/gif",
            "application/pdf",
            "text/plain",
        ]
    )
    allowed_extensions: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [
            ".jpg", ".jpeg", ".png", ".gif", ".pdf", ".txt", ".doc", ".docx",
        ]
    )

    # S3-compatible object storage
    s3_bucket: str = ""
    s3_folder: str = "file-upload-service"
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    s3_public_base_url: str | None = None
    s3_max_list_results: int = 500
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None

    @field_validator("storage_path", mode="before")
    @classmethod
    def ensure_path(cls, v: str | Path) -> Path:
        """Convert string to Path and ensure it exists."""
        path = Path(v)
        path.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator(
        "cors_origins", "allowed_mime_types", "allowed_extensions", mode="before"
    )
    @classmethod
    def split_csv(cls, v: str | list[str]) -> list[str]:
        """Accept comma-separated strings from the environment."""
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @property
    def resolved_metadata_path(self) -> Path:
        """Directory holding one JSON document per local file record."""
        return self.metadata_path or self.storage_path / "metadata"

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION

    def s3_config(self) -> S3Config:
        """Build the explicit configuration value for the S3 backend."""
        return S3Config(
            bucket=self.s3_bucket,
            folder=self.s3_folder,
            region=self.s3_region,
            endpoint_url=self.s3_endpoint_url,
            public_base_url=self.s3_public_base_url,
            access_key_id=self.aws_access_key_id,
            secret_access_key=self.aws_secret_access_key,
            timeout=self.storage_timeout,
            max_list_results=self.s3_max_list_results,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
