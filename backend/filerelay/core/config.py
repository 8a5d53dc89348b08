from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        protected_namespaces=(),
    )

    env: Literal["local", "prod", "test"] = Field(default="local", alias="ENV")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3000, alias="PORT")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"], alias="CORS_ORIGINS")

    storage_backend: Literal["local", "s3"] = Field(default="local", alias="STORAGE_BACKEND")
    upload_dir: str = Field(default="uploads", alias="UPLOAD_DIR")
    purge_on_startup: bool = Field(default=True, alias="PURGE_ON_STARTUP")

    s3_endpoint: HttpUrl | None = Field(default=None, alias="S3_ENDPOINT_URL")
    s3_access_key: str = Field(default="change-me", alias="S3_ACCESS_KEY")
    s3_secret_key: str = Field(default="change-me", alias="S3_SECRET_KEY")
    s3_region: str | None = Field(default=None, alias="S3_REGION")
    s3_bucket_uploads: str = Field(default="filerelay-uploads", alias="S3_BUCKET_UPLOADS")

    # Five minutes; every file shares the same lifetime.
    file_lifetime_seconds: float = Field(default=300.0, gt=0, alias="FILE_LIFETIME_SECONDS")
    expiry_grace_seconds: float = Field(default=2.0, ge=0, alias="EXPIRY_GRACE_SECONDS")

    max_file_size_bytes: int = Field(default=10 * 1024 * 1024, gt=0, alias="MAX_FILE_SIZE_BYTES")
    max_files_per_upload: int = Field(default=10, gt=0, alias="MAX_FILES_PER_UPLOAD")
    max_parallel_cleanups: int = Field(default=4, gt=0, alias="MAX_PARALLEL_CLEANUPS")


@lru_cache
def get_settings() -> Settings:
    return Settings()
