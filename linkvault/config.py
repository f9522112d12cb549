from functools import lru_cache
from pydantic_settings import BaseSettings


DEFAULT_ALLOWED_MIME_TYPES = {
    "text/plain",
    "text/markdown",
    "text/csv",
    "application/pdf",
    "application/json",
    "application/zip",
    "application/x-zip-compressed",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "image/png",
    "image/jpeg",
    "image/webp",
    "image/gif",
    "audio/mpeg",
    "audio/wav",
    "video/mp4",
    "video/webm",
}


class Settings(BaseSettings):
    app_name: str = "LinkVault"
    database_url: str = "sqlite:///./linkvault.db"
    log_level: str = "INFO"

    storage_backend: str = "local"  # local | s3
    upload_dir: str = "uploads"
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_region: str = "ap-south-1"
    s3_bucket_name: str | None = None
    s3_endpoint_url: str | None = None  # allows localstack/minio

    frontend_url: str = "http://localhost:5173"
    default_expiry_minutes: int = 10
    max_file_size_mb: int = 10
    allowed_mime_types: set[str] = DEFAULT_ALLOWED_MIME_TYPES

    session_ttl_days: int = 7
    min_password_length: int = 8

    sweep_interval_seconds: int = 300
    sweeper_enabled: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    return Settings()
