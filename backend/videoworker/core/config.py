"""Worker configuration settings.

All configuration values are loaded from environment variables (.env file).
The settings object is read-only once the worker has started.
"""

from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from videoworker.modules.transcoding.models import Resolution


class Settings(BaseSettings):
    """Worker settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # Application
    PROJECT_NAME: str = "Video Processing Worker"
    VERSION: str = "0.1.0"
    ENVIRONMENT: str = "development"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./videos.db"
    DATABASE_ECHO: bool = False

    # Redis / Celery
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = ""
    CELERY_RESULT_BACKEND: str = ""
    JOB_QUEUE_NAME: str = "video-processing"

    # Worker pool
    WORKER_CONCURRENCY: int = Field(default=2, gt=0)
    TASK_SOFT_TIME_LIMIT: int = Field(default=1800, gt=0)
    TASK_TIME_LIMIT: int = Field(default=1900, gt=0)

    # Queue-side retry policy
    JOB_MAX_ATTEMPTS: int = Field(default=3, ge=1)
    JOB_RETRY_INITIAL_DELAY: float = Field(default=10.0, gt=0)
    JOB_RETRY_MAX_DELAY: float = Field(default=300.0, gt=0)

    # Storage roots
    UPLOAD_PATH: str = "./uploads"
    PROCESSED_PATH: str = "./processed"
    TEMP_PATH: Optional[str] = None  # system temp dir when unset

    # Processing
    MAX_VIDEO_DURATION: int = Field(default=30, gt=0)  # seconds
    TARGET_RESOLUTION: Resolution = Resolution.RES_720P
    PROCESSING_LEASE_SECONDS: int = Field(default=3600, gt=0)

    # Media operations
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    MEDIA_OPERATION_TIMEOUT_SECONDS: float = Field(default=1200.0, gt=0)
    MEDIA_TERMINATE_GRACE_SECONDS: float = Field(default=10.0, ge=0)

    # Observability
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    METRICS_PORT: int = Field(default=0, ge=0)

    @field_validator("TARGET_RESOLUTION")
    @classmethod
    def only_720p_supported(cls, value: Resolution) -> Resolution:
        """Only the 720p target is produced for now."""
        if value != Resolution.RES_720P:
            raise ValueError("only 720p output is supported")
        return value

    @model_validator(mode="after")
    def lease_outlasts_task(self) -> "Settings":
        """A live run must never lose its claim to a redelivery."""
        if self.PROCESSING_LEASE_SECONDS <= self.TASK_TIME_LIMIT:
            raise ValueError("PROCESSING_LEASE_SECONDS must exceed TASK_TIME_LIMIT")
        return self

    @property
    def broker_url(self) -> str:
        return self.CELERY_BROKER_URL or self.REDIS_URL

    @property
    def result_backend(self) -> str:
        return self.CELERY_RESULT_BACKEND or self.REDIS_URL


settings = Settings()
