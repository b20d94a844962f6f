from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import computed_field, Field, BaseModel
from typing import Optional, Dict, List, Literal
import logging

logger = logging.getLogger(__name__)


MEBIBYTE = 1024 * 1024


class StorageSettings(BaseModel):
    backend: Literal["local", "gcs"] = "local"
    upload_dir: str = "uploads"
    # Prefix for local file URLs, e.g. "https://cdn.example.com". Empty keeps them relative.
    public_base_url: str = ""
    max_upload_bytes: int = 100 * MEBIBYTE
    timeout_seconds: float = 30.0
    max_catalog_size: int = 20


class GCSSettings(BaseModel):
    bucket_name: Optional[str] = None
    folder: str = "harsh-resource-hub-videos"
    project_id: Optional[str] = None
    credentials_file: Optional[str] = None
    list_limit: int = 30
    allowed_formats: List[str] = Field(default_factory=lambda: ["mp4", "mov", "avi", "mkv"])


class LiveSettings(BaseModel):
    """Live-update channel tuning."""
    channel_queue_size: int = 32
    send_timeout_seconds: float = 5.0
    replay_buffer_size: int = 100


class LoggingSettings(BaseModel):
    """Logging configuration settings."""
    level: str = "INFO"
    file: Optional[str] = None
    console: bool = True
    json_format: Optional[bool] = None  # Auto-detect based on environment

    # Logger-specific levels
    logger_levels: Dict[str, str] = Field(default_factory=lambda: {
        "uvicorn": "WARNING",
        "uvicorn.access": "WARNING",
        "fastapi": "INFO",
        "google": "WARNING",
        "urllib3": "WARNING",
    })


class SecuritySettings(BaseModel):
    """CORS configuration; viewers are served from any origin."""
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    cors_credentials: bool = False
    cors_methods: List[str] = Field(default_factory=lambda: ["*"])
    cors_headers: List[str] = Field(default_factory=lambda: ["*"])


class Settings(BaseSettings):
    """
    Manages application configuration.
    Values are loaded from environment variables and a .env file; nested
    sections use a double underscore, e.g. STORAGE__BACKEND=gcs.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # --- Server ---
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    STATIC_DIR: str = "public"

    # --- Application Configuration ---
    ENVIRONMENT: str = Field(default="development", description="Application environment")
    DEBUG: bool = Field(default=False, description="Enable debug mode")

    # --- Service Configurations ---
    storage: StorageSettings = Field(default_factory=StorageSettings)
    gcs: GCSSettings = Field(default_factory=GCSSettings)
    live: LiveSettings = Field(default_factory=LiveSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @computed_field
    @property
    def max_upload_megabytes(self) -> int:
        return self.storage.max_upload_bytes // MEBIBYTE


# Create a single, importable instance of the settings
settings = Settings()


def validate_settings(config: Settings) -> None:
    """Fail fast on settings that would only break at the first request."""
    from video_hub.exceptions import ConfigurationException

    if config.storage.backend == "gcs" and not config.gcs.bucket_name:
        raise ConfigurationException(
            "GCS__BUCKET_NAME must be set when STORAGE__BACKEND=gcs",
            config_key="gcs.bucket_name",
        )
    if config.storage.max_catalog_size < 1:
        raise ConfigurationException(
            "Catalog size must be at least 1",
            config_key="storage.max_catalog_size",
        )
    if config.live.channel_queue_size < 1:
        raise ConfigurationException(
            "Channel queue size must be at least 1",
            config_key="live.channel_queue_size",
        )
